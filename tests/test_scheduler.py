import asyncio
import logging
from datetime import datetime, timedelta, timezone

from liquidation_window.event_store import EventStore
from liquidation_window.scheduler import SnapshotScheduler
from liquidation_window.types import LiquidationEvent, Side

NOW = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


class DummyWriter:
    def __init__(self) -> None:
        self.payloads: list[list[dict]] = []

    def submit(self, records: list[dict]) -> None:
        self.payloads.append(list(records))


def _event(symbol: str, side: Side, quantity: float, price: float, age_seconds: float) -> LiquidationEvent:
    return LiquidationEvent(
        symbol=symbol,
        side=side,
        order_type="LIMIT",
        quantity=quantity,
        price=price,
        usdt_value=quantity * price,
        timestamp=NOW - timedelta(seconds=age_seconds),
    )


def _scheduler(store: EventStore) -> tuple[SnapshotScheduler, DummyWriter, DummyWriter]:
    raw, agg = DummyWriter(), DummyWriter()
    scheduler = SnapshotScheduler(store, raw, agg, now=lambda: NOW)  # type: ignore[arg-type]
    return scheduler, raw, agg


def test_eviction_tick_persists_only_when_something_was_removed() -> None:
    store = EventStore()
    store.ingest(_event("BTCUSDT", Side.BUY, 1, 50000, age_seconds=10))
    scheduler, raw, _ = _scheduler(store)

    assert scheduler.eviction_tick() is False
    assert raw.payloads == []

    store.ingest(_event("OLDUSDT", Side.SELL, 1, 10, age_seconds=600))
    assert scheduler.eviction_tick() is True
    assert len(raw.payloads) == 1
    assert [r["symbol"] for r in raw.payloads[0]] == ["BTCUSDT"]
    assert raw.payloads[0][0]["usdtValue"] == 50000
    assert scheduler.evictions == 1


def test_aggregation_tick_replaces_rollup() -> None:
    store = EventStore()
    store.ingest(_event("BTCUSDT", Side.BUY, 1, 50000, age_seconds=10))
    store.ingest(_event("ETHUSDT", Side.SELL, 2, 3000, age_seconds=5))
    scheduler, _, agg = _scheduler(store)

    result = scheduler.aggregation_tick()
    assert [r.symbol for r in result] == ["BTCUSDT", "ETHUSDT"]
    assert scheduler.latest_rollup == result

    store.ingest(_event("SOLUSDT", Side.BUY, 1000, 150, age_seconds=1))
    scheduler.aggregation_tick()

    assert len(agg.payloads) == 2
    assert [r["symbol"] for r in agg.payloads[-1]] == ["SOLUSDT", "BTCUSDT", "ETHUSDT"]
    assert agg.payloads[-1][0]["totalUsdtValue"] == 150000


def test_aggregation_tick_on_empty_window_persists_empty_rollup() -> None:
    scheduler, _, agg = _scheduler(EventStore())
    assert scheduler.aggregation_tick() == []
    assert agg.payloads == [[]]


def test_run_drives_both_ticks() -> None:
    store = EventStore()
    store.ingest(_event("OLDUSDT", Side.SELL, 1, 10, age_seconds=600))
    store.ingest(_event("BTCUSDT", Side.BUY, 1, 50000, age_seconds=10))
    raw, agg = DummyWriter(), DummyWriter()
    scheduler = SnapshotScheduler(
        store,
        raw,  # type: ignore[arg-type]
        agg,  # type: ignore[arg-type]
        eviction_interval=0.01,
        aggregation_interval=0.01,
        now=lambda: NOW,
    )

    async def scenario() -> None:
        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.1)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())

    assert [e.symbol for e in store.snapshot()] == ["BTCUSDT"]
    assert len(raw.payloads) == 1
    assert agg.payloads
    assert scheduler.latest_rollup is not None


def test_aggregation_tick_ignores_events_past_retention_before_eviction() -> None:
    store = EventStore()
    store.ingest(_event("STALEUSDT", Side.SELL, 100, 100, age_seconds=320))
    store.ingest(_event("BTCUSDT", Side.BUY, 1, 50000, age_seconds=10))
    scheduler, _, agg = _scheduler(store)

    result = scheduler.aggregation_tick()

    assert [r.symbol for r in result] == ["BTCUSDT"]
    assert [r["symbol"] for r in agg.payloads[-1]] == ["BTCUSDT"]
    assert len(store) == 2


class FlakyWriter(DummyWriter):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def submit(self, records: list[dict]) -> None:
        self.calls += 1
        if self.calls == 1:
            raise OSError("disk unavailable")
        super().submit(records)


def test_failing_tick_is_logged_and_timer_keeps_running(caplog) -> None:
    store = EventStore()
    store.ingest(_event("BTCUSDT", Side.BUY, 1, 50000, age_seconds=10))
    raw, agg = DummyWriter(), FlakyWriter()
    scheduler = SnapshotScheduler(
        store,
        raw,  # type: ignore[arg-type]
        agg,  # type: ignore[arg-type]
        eviction_interval=0.01,
        aggregation_interval=0.01,
        now=lambda: NOW,
    )

    async def scenario() -> None:
        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.1)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    with caplog.at_level(logging.ERROR):
        asyncio.run(scenario())

    assert agg.calls > 1
    assert agg.payloads
    assert [r["symbol"] for r in agg.payloads[-1]] == ["BTCUSDT"]
    assert "aggregation tick failed" in caplog.text

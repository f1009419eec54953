import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from liquidation_window.config import Settings
from liquidation_window.formatting import timestamp_iso
from liquidation_window.service import LiquidationService
from liquidation_window.types import LiquidationEvent, Side


class DummyStream:
    def __init__(self, events: list[LiquidationEvent]) -> None:
        self._events = events

    async def events(self):
        for event in self._events:
            yield event


def _settings(data_dir: Path) -> Settings:
    return Settings(
        ws_url="wss://example.com/ws",
        data_dir=data_dir,
        retention_seconds=300,
        eviction_interval_seconds=1000,
        aggregation_interval_seconds=1000,
        reconnect_base_delay_seconds=1.0,
        reconnect_max_delay_seconds=30.0,
        top_n=12,
        health_log_interval_seconds=1000,
        log_level="INFO",
    )


def _record(symbol: str, age: timedelta) -> dict:
    return {
        "symbol": symbol,
        "side": "SELL",
        "type": "LIMIT",
        "quantity": 1.0,
        "price": 100.0,
        "usdtValue": 100.0,
        "timestamp": timestamp_iso(datetime.now(tz=timezone.utc) - age),
    }


def test_restore_loads_only_recent_events(tmp_path: Path) -> None:
    (tmp_path / "liquidations.json").write_text(
        json.dumps(
            [
                _record("BTCUSDT", timedelta(minutes=1)),
                _record("STALEUSDT", timedelta(minutes=10)),
                {"symbol": "BROKEN"},
            ]
        ),
        encoding="utf-8",
    )
    service = LiquidationService(_settings(tmp_path))

    assert service.restore() == 1
    assert [e.symbol for e in service.store.snapshot()] == ["BTCUSDT"]


def test_restore_survives_corrupt_file(tmp_path: Path) -> None:
    (tmp_path / "liquidations.json").write_text("[{oops", encoding="utf-8")
    service = LiquidationService(_settings(tmp_path))

    assert service.restore() == 0
    assert service.query.all_events().status.value == "no_data"


def test_run_ingests_stream_events(tmp_path: Path) -> None:
    now = datetime.now(tz=timezone.utc)
    events = [
        LiquidationEvent("BTCUSDT", Side.BUY, "LIMIT", 1, 50000, 50000, now),
        LiquidationEvent("BTCUSDT", Side.BUY, "LIMIT", 2, 51000, 102000, now),
    ]
    service = LiquidationService(_settings(tmp_path))
    service.stream = DummyStream(events)  # type: ignore[assignment]

    asyncio.run(service.run())

    assert service.metrics.events_ingested == 2
    top = service.query.top_consolidated()
    assert top.items[0]["quantity"] == 3
    assert top.items[0]["usdtValue"] == 152000

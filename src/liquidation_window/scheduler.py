from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .aggregation import consolidate, rollup
from .event_store import EventStore
from .formatting import event_to_record, rollup_to_record
from .persistence import SerializedWriter
from .types import LiquidationEvent, SymbolRollup

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class SnapshotScheduler:
    def __init__(
        self,
        store: EventStore,
        raw_writer: SerializedWriter,
        rollup_writer: SerializedWriter,
        retention: timedelta = timedelta(minutes=5),
        eviction_interval: float = 30.0,
        aggregation_interval: float = 5.0,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.raw_writer = raw_writer
        self.rollup_writer = rollup_writer
        self.retention = retention
        self.eviction_interval = eviction_interval
        self.aggregation_interval = aggregation_interval
        self.now = now
        self.evictions = 0
        self.latest_rollup: list[SymbolRollup] | None = None

    def cutoff(self) -> datetime:
        return self.now() - self.retention

    def current_window(self) -> tuple[LiquidationEvent, ...]:
        cutoff = self.cutoff()
        return tuple(e for e in self.store.snapshot() if e.timestamp >= cutoff)

    def eviction_tick(self) -> bool:
        if not self.store.evict_older_than(self.cutoff()):
            return False
        self.evictions += 1
        self.raw_writer.submit([event_to_record(e) for e in self.store.snapshot()])
        return True

    def aggregation_tick(self) -> list[SymbolRollup]:
        window = self.current_window()
        consolidated = consolidate(window)
        result = rollup(window)
        logger.debug(
            "aggregation tick window=%d pairs=%d symbols=%d",
            len(window),
            len(consolidated),
            len(result),
        )
        self.latest_rollup = result
        self.rollup_writer.submit([rollup_to_record(r) for r in result])
        return result

    async def run(self) -> None:
        tasks = [
            asyncio.create_task(self._every(self.eviction_interval, self.eviction_tick, "eviction")),
            asyncio.create_task(self._every(self.aggregation_interval, self.aggregation_tick, "aggregation")),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    async def _every(interval: float, tick: Callable[[], object], name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                tick()
            except Exception as exc:
                logger.exception("%s tick failed: %s", name, exc)

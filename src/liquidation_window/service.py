from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from .config import Settings
from .event_store import EventStore
from .liquidation_stream import LiquidationStream
from .persistence import RAW_WINDOW_FILENAME, ROLLUP_FILENAME, JsonFileSink, SerializedWriter, load_records
from .query import LiquidationQuery
from .scheduler import SnapshotScheduler
from .types import LiquidationEvent

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    events_ingested: int = 0
    events_restored: int = 0


class LiquidationService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.store = EventStore()
        self.stream = LiquidationStream(
            ws_url=settings.ws_url,
            base_delay=settings.reconnect_base_delay_seconds,
            max_delay=settings.reconnect_max_delay_seconds,
        )
        self.raw_path = settings.data_dir / RAW_WINDOW_FILENAME
        self.rollup_path = settings.data_dir / ROLLUP_FILENAME
        self.raw_writer = SerializedWriter(JsonFileSink(self.raw_path))
        self.rollup_writer = SerializedWriter(JsonFileSink(self.rollup_path))
        self.scheduler = SnapshotScheduler(
            self.store,
            self.raw_writer,
            self.rollup_writer,
            retention=timedelta(seconds=settings.retention_seconds),
            eviction_interval=settings.eviction_interval_seconds,
            aggregation_interval=settings.aggregation_interval_seconds,
        )
        self.query = LiquidationQuery(
            self.store,
            self.scheduler,
            rollup_path=self.rollup_path,
            default_limit=settings.top_n,
        )

    def restore(self) -> int:
        restored = self.store.restore(load_records(self.raw_path), self.scheduler.cutoff())
        self.metrics.events_restored = restored
        return restored

    async def run(self) -> None:
        self.restore()
        scheduler_task = asyncio.create_task(self.scheduler.run())
        health_task = asyncio.create_task(self._health_loop())
        try:
            async for event in self.stream.events():
                self._handle_event(event)
        finally:
            for task in (scheduler_task, health_task):
                task.cancel()
            await asyncio.gather(scheduler_task, health_task, return_exceptions=True)
            await asyncio.gather(self.raw_writer.flush(), self.rollup_writer.flush(), return_exceptions=True)

    def _handle_event(self, event: LiquidationEvent) -> None:
        self.store.ingest(event)
        self.metrics.events_ingested += 1

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.health_log_interval_seconds)
            logger.info(
                (
                    "health state=%s window=%d ingested=%d frames=%d dropped=%d "
                    "reconnects=%d evictions=%d writes_failed=%d"
                ),
                self.stream.state.value,
                len(self.store),
                self.metrics.events_ingested,
                self.stream.frames_received,
                self.stream.frames_dropped,
                self.stream.reconnects,
                self.scheduler.evictions,
                self.raw_writer.writes_failed + self.rollup_writer.writes_failed,
            )

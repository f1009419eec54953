from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from .formatting import event_from_record
from .types import LiquidationEvent

logger = logging.getLogger(__name__)


class EventStore:
    """Ordered in-memory window of liquidation events.

    Every access to the underlying list happens under one lock; readers only
    ever get tuple copies.
    """

    def __init__(self) -> None:
        self._events: list[LiquidationEvent] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def ingest(self, event: LiquidationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def evict_older_than(self, cutoff: datetime) -> bool:
        with self._lock:
            before = len(self._events)
            self._events = [e for e in self._events if e.timestamp >= cutoff]
            removed = before - len(self._events)
        if removed:
            logger.debug("Evicted %d events older than %s", removed, cutoff.isoformat())
        return removed > 0

    def snapshot(self) -> tuple[LiquidationEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def restore(self, records: Iterable[Any], cutoff: datetime) -> int:
        restored: list[LiquidationEvent] = []
        skipped = 0
        for record in records:
            try:
                event = event_from_record(record)
            except ValueError as exc:
                skipped += 1
                logger.warning("Skipping malformed persisted event: %s", exc)
                continue
            if event.timestamp < cutoff:
                continue
            restored.append(event)

        with self._lock:
            self._events = restored

        logger.info("Restored %d events from disk (skipped %d malformed)", len(restored), skipped)
        return len(restored)

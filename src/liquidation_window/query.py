from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .aggregation import consolidate, sort_events, top_n
from .event_store import EventStore
from .formatting import consolidated_to_record, event_to_record, rollup_to_record
from .persistence import load_records
from .scheduler import SnapshotScheduler

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No liquidation data available yet"
ERROR_MESSAGE = "Failed to retrieve liquidation data"


class QueryStatus(str, Enum):
    OK = "ok"
    NO_DATA = "no_data"
    ERROR = "error"


@dataclass(frozen=True)
class QueryResult:
    status: QueryStatus
    items: list[dict[str, Any]] = field(default_factory=list)
    message: str | None = None

    @classmethod
    def of(cls, items: list[dict[str, Any]]) -> QueryResult:
        if not items:
            return cls(QueryStatus.NO_DATA, [], NO_DATA_MESSAGE)
        return cls(QueryStatus.OK, items)


class LiquidationQuery:
    """Side-effect free reads over the live window and the latest rollup."""

    def __init__(
        self,
        store: EventStore,
        scheduler: SnapshotScheduler,
        rollup_path: Path | None = None,
        default_limit: int = 12,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.rollup_path = rollup_path
        self.default_limit = default_limit

    def all_events(self) -> QueryResult:
        return self._safe(lambda: [event_to_record(e) for e in self.store.snapshot()])

    def window_sorted(self, sort_by: str = "usdt_value", order: str = "desc") -> QueryResult:
        return self._safe(
            lambda: [event_to_record(e) for e in sort_events(self.scheduler.current_window(), sort_by, order)]
        )

    def top_consolidated(self, limit: int | None = None) -> QueryResult:
        n = self.default_limit if limit is None else limit
        return self._safe(
            lambda: [consolidated_to_record(e) for e in top_n(consolidate(self.scheduler.current_window()), n)]
        )

    def latest_rollup(self) -> QueryResult:
        def read() -> list[dict[str, Any]]:
            if self.scheduler.latest_rollup is not None:
                return [rollup_to_record(r) for r in self.scheduler.latest_rollup]
            if self.rollup_path is not None:
                return load_records(self.rollup_path)
            return []

        return self._safe(read)

    @staticmethod
    def _safe(read: Callable[[], list[dict[str, Any]]]) -> QueryResult:
        try:
            return QueryResult.of(read())
        except Exception as exc:
            logger.exception("Error reading liquidation view: %s", exc)
            return QueryResult(QueryStatus.ERROR, [], ERROR_MESSAGE)

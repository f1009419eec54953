from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

RAW_WINDOW_FILENAME = "liquidations.json"
ROLLUP_FILENAME = "recent_liquidations.json"


class JsonFileSink:
    """Writes a list of records to one JSON file, replacing it atomically."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, records: Sequence[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.parent / f".{self.path.name}.{uuid.uuid4().hex}.tmp"
        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(list(records), handle, indent=2)
            tmp_path.replace(self.path)
        finally:
            tmp_path.unlink(missing_ok=True)


class SerializedWriter:
    """Fire-and-forget writes to a single sink.

    At most one write is in flight. While it runs, newer submissions replace
    any payload still waiting, so the file always ends on the latest state.
    """

    def __init__(self, sink: JsonFileSink) -> None:
        self.sink = sink
        self.writes_completed = 0
        self.writes_failed = 0
        self._pending: list[dict[str, Any]] | None = None
        self._task: asyncio.Task[None] | None = None

    def submit(self, records: Sequence[dict[str, Any]]) -> None:
        self._pending = list(records)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def flush(self) -> None:
        if self._task is not None:
            await self._task

    async def _drain(self) -> None:
        while self._pending is not None:
            records, self._pending = self._pending, None
            try:
                await asyncio.to_thread(self.sink.write, records)
                self.writes_completed += 1
            except Exception as exc:
                self.writes_failed += 1
                logger.exception("Failed to write %s: %s", self.sink.path, exc)


def load_records(path: Path) -> list[Any]:
    if not path.exists():
        logger.info("No existing file at %s, starting fresh", path)
        return []

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s, starting empty: %s", path, exc)
        return []

    if not isinstance(data, list):
        logger.warning("Expected a JSON list in %s, got %s; starting empty", path, type(data).__name__)
        return []
    return data

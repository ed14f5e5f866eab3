from __future__ import annotations

import asyncio
import logging
import time
from typing import List

from pydantic import BaseModel

from bookmark_sorter.database import add_history_record, clear_history_records, list_history_records
from bookmark_sorter.errors import PersistenceFailure
from bookmark_sorter.models import HistoryRecord
from bookmark_sorter.settings import S


logger = logging.getLogger(__name__)


class HistoryEntry(BaseModel):
    id: str
    timestamp: int
    title: str
    url: str
    category: str
    status: str = "success"

    @classmethod
    def from_record(cls, record: HistoryRecord) -> "HistoryEntry":
        return cls(
            id=record.entry_id,
            timestamp=record.timestamp,
            title=record.title,
            url=record.url,
            category=record.category,
            status=record.status,
        )


class HistoryRecorder:
    """Bounded newest-first log of classification outcomes."""

    def __init__(self, limit: int | None = None) -> None:
        self.limit = int(limit if limit is not None else S.HISTORY_LIMIT)
        self._last_id = 0

    def _next_id(self, timestamp: int) -> str:
        value = max(timestamp, self._last_id + 1)
        self._last_id = value
        return str(value)

    def _write(self, entry_id: str, timestamp: int, title: str, url: str, category: str, status: str) -> None:
        record = HistoryRecord(
            entry_id=entry_id,
            timestamp=timestamp,
            title=title or "",
            url=url or "",
            category=category or "",
            status=status or "success",
        )
        try:
            add_history_record(record, self.limit)
        except Exception as exc:
            raise PersistenceFailure(str(exc)) from exc

    async def record(self, title: str, url: str, category: str, status: str = "success") -> None:
        timestamp = int(time.time() * 1000)
        entry_id = self._next_id(timestamp)
        try:
            await asyncio.to_thread(self._write, entry_id, timestamp, title, url, category, status)
        except PersistenceFailure as exc:
            logger.warning("History entry for %s could not be stored: %s", url, exc)

    async def list_entries(self) -> List[HistoryEntry]:
        records = await asyncio.to_thread(list_history_records, self.limit)
        return [HistoryEntry.from_record(record) for record in records]

    async def clear(self) -> int:
        return await asyncio.to_thread(clear_history_records)

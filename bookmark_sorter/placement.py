"""Folder resolution and idempotent bookmark placement."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from bookmark_sorter.bookmark_store import BookmarkStore
from bookmark_sorter.errors import PlacementFailure
from bookmark_sorter.models import BookmarkNode
from bookmark_sorter.settings import S


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacementOutcome:
    folder_id: int
    bookmark_id: int
    created: bool


class SelfCreatedCache:
    """URLs this engine just created, so the creation event is not classified again.

    Entries expire lazily on access after ``ttl_seconds``.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = Lock()

    def _purge(self, now: float) -> None:
        expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)

    def mark(self, url: str) -> None:
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._entries[url] = now + self._ttl

    def contains(self, url: str) -> bool:
        with self._lock:
            self._purge(self._clock())
            return url in self._entries

    def consume(self, url: str) -> bool:
        with self._lock:
            self._purge(self._clock())
            return self._entries.pop(url, None) is not None

    def discard(self, url: str) -> None:
        with self._lock:
            self._entries.pop(url, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._entries)


class PlacementEngine:
    def __init__(self, store: BookmarkStore, self_created: Optional[SelfCreatedCache] = None) -> None:
        self.store = store
        self.self_created = self_created or SelfCreatedCache(float(S.SELF_CREATED_TTL_SECONDS))
        self._folder_lock = asyncio.Lock()
        self._entry_locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _entry_lock(self, resource_key: str) -> AsyncIterator[None]:
        """Hold the per-url lock covering lookup through create."""

        lock, users = self._entry_locks.get(resource_key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._entry_locks[resource_key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._entry_locks[resource_key]
            if users <= 1:
                self._entry_locks.pop(resource_key, None)
            else:
                self._entry_locks[resource_key] = (lock, users - 1)

    async def existing_folder_names(self) -> List[str]:
        root_id = await self.store.root_id()
        children = await self.store.get_children(root_id)
        return [child.title for child in children if child.is_folder]

    async def resolve_folder(self, category: str) -> int:
        async with self._folder_lock:
            root_id = await self.store.root_id()
            for child in await self.store.get_children(root_id):
                if child.is_folder and child.title == category:
                    return int(child.id)
            folder = await self.store.create_folder(root_id, category)
            return int(folder.id)

    async def _existing_entry(self, resource_key: str, existing_bookmark_id: Optional[int]) -> Optional[BookmarkNode]:
        if existing_bookmark_id is not None:
            try:
                node = await self.store.get_node(existing_bookmark_id)
            except LookupError:
                logger.info("Bookmark %s vanished, looking up %s by url", existing_bookmark_id, resource_key)
            else:
                if not node.is_folder:
                    return node
        matches = await self.store.find_by_url(resource_key)
        return matches[0] if matches else None

    async def _place_entry(
        self,
        folder_id: int,
        resource_key: str,
        title: str,
        existing_bookmark_id: Optional[int],
    ) -> PlacementOutcome:
        existing = await self._existing_entry(resource_key, existing_bookmark_id)
        if existing is not None:
            if existing.parent_id != folder_id:
                await self.store.move(int(existing.id), folder_id)
            if title and title != existing.title:
                await self.store.update(int(existing.id), title=title)
            return PlacementOutcome(folder_id=folder_id, bookmark_id=int(existing.id), created=False)

        self.self_created.mark(resource_key)
        try:
            node = await self.store.create_bookmark(folder_id, title, resource_key)
        except Exception:
            self.self_created.discard(resource_key)
            raise
        return PlacementOutcome(folder_id=folder_id, bookmark_id=int(node.id), created=True)

    async def place(
        self,
        category: str,
        resource_key: str,
        title: str,
        existing_bookmark_id: Optional[int] = None,
    ) -> PlacementOutcome:
        """Put ``resource_key`` into the folder named ``category``.

        An entry that already exists (by id, else by url) is moved and retitled;
        otherwise a new entry is created and marked as self-created.
        """

        if not category:
            raise PlacementFailure("category must not be empty")
        try:
            folder_id = await self.resolve_folder(category)
            async with self._entry_lock(resource_key):
                return await self._place_entry(folder_id, resource_key, title, existing_bookmark_id)
        except PlacementFailure:
            raise
        except Exception as exc:
            logger.error("Placing %s into %s failed: %s", resource_key, category, exc)
            raise PlacementFailure(f"could not place bookmark: {exc}") from exc

"""Durable bookmark tree (folders and bookmark entries) backed by SQLModel."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy import func
from sqlmodel import Session, select

from bookmark_sorter.database import get_session, root_folder_id
from bookmark_sorter.models import BookmarkNode


logger = logging.getLogger(__name__)


CreatedListener = Callable[[BookmarkNode], Awaitable[None]]


def _load(ses: Session, node_id: int) -> BookmarkNode:
    node = ses.get(BookmarkNode, node_id)
    if node is None:
        raise LookupError(f"bookmark node {node_id} not found")
    return node


def _next_position(ses: Session, parent_id: int) -> int:
    count = ses.exec(
        select(func.count()).select_from(BookmarkNode).where(BookmarkNode.parent_id == parent_id)
    ).one()
    return int(count or 0)


def _require_folder(ses: Session, parent_id: int) -> BookmarkNode:
    parent = _load(ses, parent_id)
    if not parent.is_folder:
        raise ValueError(f"node {parent_id} is a bookmark, not a folder")
    return parent


def _descendant_ids(ses: Session, node_id: int) -> List[int]:
    collected: List[int] = []
    frontier = [node_id]
    while frontier:
        children = ses.exec(select(BookmarkNode.id).where(BookmarkNode.parent_id.in_(frontier))).all()
        frontier = [int(child) for child in children]
        collected.extend(frontier)
    return collected


def get_node(node_id: int) -> BookmarkNode:
    with get_session() as ses:
        return _load(ses, node_id)


def get_children(parent_id: int) -> List[BookmarkNode]:
    with get_session() as ses:
        stmt = (
            select(BookmarkNode)
            .where(BookmarkNode.parent_id == parent_id)
            .order_by(BookmarkNode.position, BookmarkNode.id)
        )
        return ses.exec(stmt).all()


def get_tree(node_id: Optional[int] = None) -> Dict[str, Any]:
    """Return the subtree rooted at ``node_id`` (the root container by default)."""

    start = node_id if node_id is not None else root_folder_id()
    with get_session() as ses:
        rows = ses.exec(select(BookmarkNode).order_by(BookmarkNode.position, BookmarkNode.id)).all()
    by_parent: Dict[Optional[int], List[BookmarkNode]] = {}
    nodes: Dict[int, BookmarkNode] = {}
    for row in rows:
        nodes[int(row.id)] = row
        by_parent.setdefault(row.parent_id, []).append(row)
    if start not in nodes:
        raise LookupError(f"bookmark node {start} not found")

    def _render(node: BookmarkNode) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": node.id,
            "parent_id": node.parent_id,
            "title": node.title,
            "url": node.url,
        }
        if node.is_folder:
            payload["children"] = [_render(child) for child in by_parent.get(node.id, [])]
        return payload

    return _render(nodes[start])


def find_by_url(url: str) -> List[BookmarkNode]:
    with get_session() as ses:
        stmt = select(BookmarkNode).where(BookmarkNode.url == url).order_by(BookmarkNode.id)
        return ses.exec(stmt).all()


def create_folder(parent_id: int, title: str) -> BookmarkNode:
    with get_session() as ses:
        _require_folder(ses, parent_id)
        node = BookmarkNode(parent_id=parent_id, title=title, url=None, position=_next_position(ses, parent_id))
        ses.add(node)
        ses.commit()
        ses.refresh(node)
        logger.info("Created bookmark folder %s", title)
        return node


def create_bookmark(parent_id: int, title: str, url: str) -> BookmarkNode:
    if not url:
        raise ValueError("bookmark url must not be empty")
    with get_session() as ses:
        _require_folder(ses, parent_id)
        node = BookmarkNode(parent_id=parent_id, title=title, url=url, position=_next_position(ses, parent_id))
        ses.add(node)
        ses.commit()
        ses.refresh(node)
        return node


def move(node_id: int, parent_id: int) -> BookmarkNode:
    with get_session() as ses:
        node = _load(ses, node_id)
        if node.parent_id is None:
            raise ValueError("the root container cannot be moved")
        _require_folder(ses, parent_id)
        if node.is_folder and (parent_id == node_id or parent_id in _descendant_ids(ses, node_id)):
            raise ValueError("a folder cannot be moved into its own subtree")
        if node.parent_id == parent_id:
            return node
        node.parent_id = parent_id
        node.position = _next_position(ses, parent_id)
        ses.add(node)
        ses.commit()
        ses.refresh(node)
        return node


def update(node_id: int, title: Optional[str] = None, url: Optional[str] = None) -> BookmarkNode:
    with get_session() as ses:
        node = _load(ses, node_id)
        if url is not None:
            if node.is_folder:
                raise ValueError("folders have no url")
            if not url.strip():
                raise ValueError("bookmark url must not be empty")
            node.url = url.strip()
        if title is not None:
            node.title = title
        ses.add(node)
        ses.commit()
        ses.refresh(node)
        return node


def remove(node_id: int) -> None:
    with get_session() as ses:
        node = _load(ses, node_id)
        if node.parent_id is None:
            raise ValueError("the root container cannot be removed")
        if node.is_folder and _descendant_ids(ses, node_id):
            raise ValueError("folder is not empty")
        ses.delete(node)
        ses.commit()


def remove_tree(node_id: int) -> int:
    with get_session() as ses:
        node = _load(ses, node_id)
        if node.parent_id is None:
            raise ValueError("the root container cannot be removed")
        doomed = _descendant_ids(ses, node_id)
        for child_id in doomed:
            child = ses.get(BookmarkNode, child_id)
            if child is not None:
                ses.delete(child)
        ses.delete(node)
        ses.commit()
        return len(doomed) + 1


class BookmarkStore:
    """Async facade over the bookmark tree; each call runs in a worker thread.

    Listeners registered with ``add_created_listener`` run as background tasks
    after every ``create_bookmark``.
    """

    def __init__(self) -> None:
        self._created_listeners: List[CreatedListener] = []
        self._tasks: Set[asyncio.Task] = set()

    def add_created_listener(self, listener: CreatedListener) -> None:
        self._created_listeners.append(listener)

    async def _deliver(self, listener: CreatedListener, node: BookmarkNode) -> None:
        try:
            await listener(node)
        except Exception:
            logger.exception("Bookmark created listener failed for %s", node.url)

    def _emit_created(self, node: BookmarkNode) -> None:
        for listener in list(self._created_listeners):
            task = asyncio.create_task(self._deliver(listener, node))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every pending listener task (and any it spawned) finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def root_id(self) -> int:
        return await asyncio.to_thread(root_folder_id)

    async def get_tree(self, node_id: Optional[int] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(get_tree, node_id)

    async def get_node(self, node_id: int) -> BookmarkNode:
        return await asyncio.to_thread(get_node, node_id)

    async def get_children(self, parent_id: int) -> List[BookmarkNode]:
        return await asyncio.to_thread(get_children, parent_id)

    async def find_by_url(self, url: str) -> List[BookmarkNode]:
        return await asyncio.to_thread(find_by_url, url)

    async def create_folder(self, parent_id: int, title: str) -> BookmarkNode:
        return await asyncio.to_thread(create_folder, parent_id, title)

    async def create_bookmark(self, parent_id: int, title: str, url: str) -> BookmarkNode:
        node = await asyncio.to_thread(create_bookmark, parent_id, title, url)
        self._emit_created(node)
        return node

    async def move(self, node_id: int, parent_id: int) -> BookmarkNode:
        return await asyncio.to_thread(move, node_id, parent_id)

    async def update(self, node_id: int, title: Optional[str] = None, url: Optional[str] = None) -> BookmarkNode:
        return await asyncio.to_thread(update, node_id, title, url)

    async def remove(self, node_id: int) -> None:
        await asyncio.to_thread(remove, node_id)

    async def remove_tree(self, node_id: int) -> int:
        return await asyncio.to_thread(remove_tree, node_id)

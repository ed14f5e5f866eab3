"""Fire-and-forget status toasts for the surface that triggered a request."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


STATUSES = ("info", "success", "error")


class NotificationHub:
    def __init__(self, queue_size: int = 32) -> None:
        self._queue_size = queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def subscribe(self, surface: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.setdefault(surface, set()).add(queue)
        return queue

    def unsubscribe(self, surface: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(surface)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._subscribers.pop(surface, None)

    def surfaces(self) -> List[str]:
        return sorted(self._subscribers)

    def notify(self, surface: Optional[str], message: str, status: str) -> int:
        """Queue a toast for the subscribers of ``surface`` (all surfaces when ``None``).

        Returns the number of queues that accepted the event.
        """

        if status not in STATUSES:
            status = "info"
        event: Dict[str, Any] = {"type": "SHOW_TOAST", "message": message, "status": status}
        if surface:
            targets = list(self._subscribers.get(surface, ()))
        else:
            targets = [queue for queues in self._subscribers.values() for queue in queues]
        delivered = 0
        for queue in targets:
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Notification queue for %s is full, dropping toast", surface)
        if not delivered:
            logger.debug("No live subscriber for %s: %s", surface, message)
        return delivered

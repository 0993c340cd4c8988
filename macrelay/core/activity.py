"""In-memory activity feed streamed to observers over server-sent events."""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Any, AsyncIterator, Deque, Dict, List, Set

logger = logging.getLogger(__name__)

SUBSCRIBER_BACKLOG = 256


class ActivityLog:
    """Keeps recent relay activity and fans new entries out to subscribers."""

    def __init__(self, history: int = 100, backlog: int = SUBSCRIBER_BACKLOG):
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history)
        self._backlog = backlog
        self._subscribers: Set[asyncio.Queue] = set()

    def record(self, kind: str, **details: Any) -> Dict[str, Any]:
        entry = {"type": kind, "time": datetime.now().isoformat(), **details}
        self._history.append(entry)
        for queue in self._subscribers:
            try:
                queue.put_nowait(entry)
            except asyncio.QueueFull:
                logger.warning(f"Activity subscriber backlog full, dropping {kind}")
        return entry

    def recent(self) -> List[Dict[str, Any]]:
        return list(self._history)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def follow(self, replay: bool = True) -> AsyncIterator[Dict[str, Any]]:
        """Yield recorded entries as they happen, starting with the history."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._backlog)
        if replay:
            # Newest entries win when the history is larger than the backlog.
            for entry in list(self._history)[-self._backlog:]:
                queue.put_nowait(entry)
        self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

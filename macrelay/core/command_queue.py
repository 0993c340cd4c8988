"""FIFO buffer for device-bound commands and its paced drain."""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, List, Optional

from macrelay.models.command import QueuedCommand
from macrelay.models.events import Channel

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_INTERVAL = 2.5

Deliver = Callable[[QueuedCommand], Awaitable[None]]
Progress = Callable[[int], Awaitable[None]]
Cleared = Callable[[], Awaitable[None]]


class CommandQueue:
    """
    Ordered buffer of commands accumulated while no device is attached.

    Commands leave the queue in exactly the order they entered it. Draining
    runs as a single task that delivers one command per interval and stops
    as soon as the target device is no longer current.
    """

    def __init__(self, interval: float = DEFAULT_DRAIN_INTERVAL):
        self.interval = interval
        self._items: Deque[QueuedCommand] = deque()
        self._sequence = 0
        self._drain_task: Optional[asyncio.Task] = None

    def enqueue(self, channel: Channel, payload: Any) -> int:
        """Append a command to the tail and return the new length."""
        self._sequence += 1
        self._items.append(QueuedCommand(channel, payload, self._sequence))
        return len(self._items)

    def length(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def pending(self) -> List[QueuedCommand]:
        """Snapshot of the queued commands, head first."""
        return list(self._items)

    @property
    def drain_task(self) -> Optional[asyncio.Task]:
        return self._drain_task

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def drain(self, deliver: Deliver, on_progress: Progress, on_cleared: Cleared,
              still_valid: Callable[[], bool]) -> asyncio.Task:
        """
        Start delivering queued commands, replacing any drain in flight.

        The first command goes out immediately, each following one after
        ``interval`` seconds. ``still_valid`` is checked before every delivery;
        once it returns False the drain stops and the remaining commands stay
        queued.

        Args:
            deliver: Sends one command to the device
            on_progress: Called with the remaining count after each delivery
            on_cleared: Called once the queue has been emptied
            still_valid: Whether the device the drain targets is still bound

        Returns:
            The drain task
        """
        self.cancel_drain()
        self._drain_task = asyncio.create_task(
            self._run_drain(deliver, on_progress, on_cleared, still_valid)
        )
        return self._drain_task

    def cancel_drain(self) -> bool:
        """Cancel the drain in flight. Returns True if one was running."""
        if not self.is_draining:
            return False
        self._drain_task.cancel()
        self._drain_task = None
        return True

    async def _run_drain(self, deliver: Deliver, on_progress: Progress, on_cleared: Cleared,
                         still_valid: Callable[[], bool]) -> None:
        delivered = 0
        while self._items:
            if delivered:
                await asyncio.sleep(self.interval)
            if not still_valid():
                logger.info(f"Drain aborted with {len(self._items)} command(s) still queued")
                return
            if not self._items:
                break

            command = self._items.popleft()
            await deliver(command)
            delivered += 1
            await on_progress(len(self._items))

        logger.info(f"Drain finished after {delivered} command(s)")
        await on_cleared()

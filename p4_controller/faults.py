"""Single-slot fault channel shared by the tasks of one session."""

import asyncio
import logging

logger = logging.getLogger(__name__)


class FaultChannel:
    """
    Best-effort, single-slot notification of runtime faults.

    Any task of a session may report a fault; only the session's run loop
    waits on it. Reporting never blocks: while a fault is pending, further
    reports are dropped, so the first fault wins.
    """

    def __init__(self):
        self._queue: asyncio.Queue[Exception] = asyncio.Queue(maxsize=1)

    def report(self, error: Exception) -> bool:
        """
        Report a fault.

        Args:
            error: The fault

        Returns:
            True if the fault was queued, False if it was dropped
        """
        try:
            self._queue.put_nowait(error)
        except asyncio.QueueFull:
            logger.debug(f"Fault already pending, dropping: {error}")
            return False
        return True

    async def wait(self) -> Exception:
        """Wait for the next fault."""
        return await self._queue.get()

    def take(self) -> Exception | None:
        """Remove and return the pending fault, if any."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

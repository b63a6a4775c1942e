"""
Clock and periodic ticker for the order timers.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


class Ticker:
    """
    Cancellable periodic task.

    Calls `callback` every `interval` seconds on the running event loop until
    stopped. A failing tick is logged and the loop keeps going.
    """

    def __init__(self, name: str, callback: Callable[[], Awaitable[object]], interval: float = 1.0):
        if interval <= 0:
            raise ValueError(f"Ticker interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start ticking. Must be called from within a running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"ticker:{self.name}")
        logger.info("Started %s ticker every %s seconds", self.name, self.interval)

    async def stop(self):
        """Cancel the task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped %s ticker", self.name)

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._callback()
            except Exception as e:
                logger.error("%s tick failed: %s", self.name, e)

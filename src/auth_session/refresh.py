"""
Periodic session refresh.

Wakes up on a fixed interval and asks the session manager to refresh the
session when it is about to expire. Failures are handled by the manager
(it signs the user out); the loop itself only keeps running.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class SessionRefreshScheduler:
    """Background loop calling a refresh callback every interval.

    Args:
        refresh: Coroutine function taking the expiry threshold in seconds
            and returning True when a refresh happened
        interval_seconds: Delay between checks
        threshold_seconds: Refresh when the session expires within this window
    """

    def __init__(
        self,
        refresh: Callable[[float], Awaitable[bool]],
        interval_seconds: float = 300.0,
        threshold_seconds: float = 600.0,
    ):
        self._refresh = refresh
        self.interval_seconds = interval_seconds
        self.threshold_seconds = threshold_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"[SessionRefresh] Checking every {self.interval_seconds}s")

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def check(self) -> bool:
        """Run one check immediately."""
        try:
            return await self._refresh(self.threshold_seconds)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[SessionRefresh] Refresh check failed")
            return False

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.check()

"""
Initialization guard.

Bounds the time allowed for first-load session resolution. The guard is a
one-shot timer on the running event loop: if it fires before it is cancelled,
its callback forces a terminal state even though the gateway never answered.
"""

import asyncio
import logging
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class InitializationGuard:
    """One-shot, cancellable timeout for session initialization.

    Example:
        guard = InitializationGuard(30.0, on_timeout=manager._on_init_timeout)
        guard.start()
        ...
        guard.cancel()  # initialization finished in time
    """

    def __init__(self, timeout_seconds: float, on_timeout: Callable[[], None]):
        self.timeout_seconds = timeout_seconds
        self._on_timeout = on_timeout
        self._handle: Optional[asyncio.TimerHandle] = None
        self._fired = False

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def fired(self) -> bool:
        return self._fired

    def start(self) -> None:
        """Arm the timer, replacing any timer already armed."""
        self.cancel()
        self._fired = False
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout_seconds, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._fired = True
        logger.warning(
            f"[InitializationGuard] Initialization timed out after {self.timeout_seconds}s"
        )
        try:
            self._on_timeout()
        except Exception:
            logger.exception("[InitializationGuard] Timeout handler failed")

"""
Cross-tab synchronization.

Broadcasts terminal authenticated/unauthenticated transitions to the other
contexts of the same origin and reacts to theirs:

- "unauthenticated" received while locally authenticated: sign out locally
  through the gateway, which cascades through normal SIGNED_OUT handling.
- "authenticated" received while locally unauthenticated: re-fetch the
  session from the gateway. The other tab's session object is never reused.

Without a channel (non-browser environment, no hub configured) every
operation is a silent no-op; tabs then converge only through their own
gateway events.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from auth_session.broadcast import BroadcastChannel


logger = logging.getLogger(__name__)

AUTH_STATE_CHANGED = "AUTH_STATE_CHANGED"
STATE_AUTHENTICATED = "authenticated"
STATE_UNAUTHENTICATED = "unauthenticated"


class CrossTabSynchronizer:
    """Bridges the local session manager and the same-origin channel.

    Args:
        channel: Open broadcast channel, or None when unavailable
        is_authenticated: Reads the live local authentication flag
        on_remote_sign_out: Corrective action for a remote sign-out
        on_remote_sign_in: Corrective action for a remote sign-in
    """

    def __init__(
        self,
        channel: Optional[BroadcastChannel],
        is_authenticated: Callable[[], bool],
        on_remote_sign_out: Callable[[], Awaitable[Any]],
        on_remote_sign_in: Callable[[], Awaitable[Any]],
    ):
        self._channel = channel
        self._is_authenticated = is_authenticated
        self._on_remote_sign_out = on_remote_sign_out
        self._on_remote_sign_in = on_remote_sign_in
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        if self._channel is not None:
            self._channel.add_listener(self._handle_message)

    @property
    def enabled(self) -> bool:
        return self._channel is not None and not self._closed

    def broadcast_authenticated(self) -> None:
        self._post(STATE_AUTHENTICATED)

    def broadcast_unauthenticated(self) -> None:
        self._post(STATE_UNAUTHENTICATED)

    def close(self) -> None:
        """Stop listening and cancel in-flight corrective actions."""
        if self._closed:
            return
        self._closed = True
        if self._channel is not None:
            self._channel.remove_listener(self._handle_message)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _post(self, state: str) -> None:
        if not self.enabled:
            return
        try:
            self._channel.post_message({"type": AUTH_STATE_CHANGED, "state": state})
        except RuntimeError as e:
            # Channel closed underneath us; cross-tab sync degrades silently
            logger.warning(f"[CrossTab] Broadcast of '{state}' failed: {e}")

    def _handle_message(self, message: Dict[str, Any]) -> None:
        if self._closed or message.get("type") != AUTH_STATE_CHANGED:
            return

        state = message.get("state")
        if state == STATE_UNAUTHENTICATED and self._is_authenticated():
            logger.info("[CrossTab] Sign-out detected in another tab: signing out.")
            self._spawn(self._on_remote_sign_out)
        elif state == STATE_AUTHENTICATED and not self._is_authenticated():
            logger.info("[CrossTab] Sign-in detected in another tab: refreshing session.")
            self._spawn(self._on_remote_sign_in)

    def _spawn(self, action: Callable[[], Awaitable[Any]]) -> None:
        task = asyncio.get_running_loop().create_task(self._run(action))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, action: Callable[[], Awaitable[Any]]) -> None:
        try:
            await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[CrossTab] Corrective action failed: {e}")

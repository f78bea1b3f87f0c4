"""
Same-origin broadcast channel.

An in-process analogue of the browser BroadcastChannel API. Every browser
context (tab) sharing an origin opens a channel with the same name on the
same hub. A message posted on one channel is delivered to every *other* open
channel of that name, asynchronously on the event loop, never to the sender.

The hub is an explicitly constructed object rather than a module global, so
tests can run several isolated "origins" side by side.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

MessageListener = Callable[[Dict[str, Any]], None]


class BroadcastHub:
    """Registry of open channels, grouped by channel name."""

    def __init__(self):
        self._channels: Dict[str, List["BroadcastChannel"]] = {}

    def open(self, name: str) -> "BroadcastChannel":
        channel = BroadcastChannel(name, hub=self)
        self._channels.setdefault(name, []).append(channel)
        return channel

    def _detach(self, channel: "BroadcastChannel") -> None:
        peers = self._channels.get(channel.name, [])
        if channel in peers:
            peers.remove(channel)
        if not peers:
            self._channels.pop(channel.name, None)

    def _deliver(self, sender: "BroadcastChannel", message: Dict[str, Any]) -> int:
        loop = asyncio.get_running_loop()
        delivered = 0
        for peer in list(self._channels.get(sender.name, [])):
            if peer is sender or peer.closed:
                continue
            loop.call_soon(peer._dispatch, dict(message))
            delivered += 1
        return delivered

    def channel_count(self, name: str) -> int:
        return len(self._channels.get(name, []))


class BroadcastChannel:
    """One context's handle on a named channel."""

    def __init__(self, name: str, hub: BroadcastHub):
        self.name = name
        self._hub = hub
        self._listeners: List[MessageListener] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def post_message(self, message: Dict[str, Any]) -> int:
        """Send a message to the other contexts. Returns the recipient count."""
        if self._closed:
            raise RuntimeError(f"Broadcast channel '{self.name}' is closed")
        return self._hub._deliver(self, message)

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        self._hub._detach(self)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception(f"[BroadcastChannel] Listener failed on '{self.name}'")


def open_channel(hub: Optional[BroadcastHub], name: str) -> Optional[BroadcastChannel]:
    """Open a channel, or return None when no hub is available."""
    if hub is None:
        logger.info(f"[BroadcastChannel] No broadcast hub; '{name}' disabled")
        return None
    return hub.open(name)

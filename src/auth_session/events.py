"""
Gateway change events as cancellable async streams.

The identity gateway reports sign-in, sign-out and token refreshes at any
time after subscription. Instead of registering a raw callback, consumers
open an AuthEventStream and iterate it; closing the stream unsubscribes and
ends the iteration. Gateway implementations fan events out to every open
stream through an AuthEventEmitter, preserving emission order per stream.

Usage:
    stream = gateway.on_auth_state_change()
    async for event in stream:
        handle(event)
    ...
    stream.close()
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from auth_session.models import Session


logger = logging.getLogger(__name__)


class AuthEventKind(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    OTHER = "OTHER"


class AuthEvent(BaseModel):
    """A change notification emitted by the identity gateway."""
    kind: AuthEventKind = Field(..., description="Event kind")
    session: Optional[Session] = Field(default=None, description="Session after the event")

    class Config:
        frozen = True


class AuthEventStream:
    """A single subscription to gateway change events.

    Events are buffered in an unbounded queue and delivered in the order they
    were published. After close() no further events are delivered and any
    pending iteration ends.
    """

    def __init__(self, emitter: Optional["AuthEventEmitter"] = None):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._emitter = emitter

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: AuthEvent) -> bool:
        """Queue an event for this subscriber. Returns False once closed."""
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        # Wake a consumer blocked in __anext__
        self._queue.put_nowait(None)
        if self._emitter is not None:
            self._emitter.remove(self)

    def __aiter__(self) -> "AuthEventStream":
        return self

    async def __anext__(self) -> AuthEvent:
        if self._closed:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None or self._closed:
            raise StopAsyncIteration
        return event


class AuthEventEmitter:
    """Fan-out helper for gateway implementations."""

    def __init__(self):
        self._streams: List[AuthEventStream] = []

    def subscribe(self) -> AuthEventStream:
        stream = AuthEventStream(emitter=self)
        self._streams.append(stream)
        return stream

    def remove(self, stream: AuthEventStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    def emit(self, event: AuthEvent) -> int:
        """Deliver an event to every open stream. Returns the delivery count."""
        delivered = 0
        for stream in list(self._streams):
            if stream.publish(event):
                delivered += 1
        logger.debug(f"[AuthEvents] {event.kind.value} delivered to {delivered} stream(s)")
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._streams)

    def close_all(self) -> None:
        for stream in list(self._streams):
            stream.close()

"""
Unit tests for gateway event streams.
"""
import asyncio
import pytest

from auth_session.events import AuthEvent, AuthEventEmitter, AuthEventKind
from tests.fixtures.fake_gateway import make_session


class TestAuthEventStream:
    """Tests for AuthEventStream and AuthEventEmitter."""

    @pytest.mark.asyncio
    async def test_close_drops_undelivered_events(self):
        """Test that nothing is delivered once the stream is closed."""
        emitter = AuthEventEmitter()
        stream = emitter.subscribe()
        session = make_session()

        emitter.emit(AuthEvent(kind=AuthEventKind.SIGNED_IN, session=session))
        emitter.emit(AuthEvent(kind=AuthEventKind.TOKEN_REFRESHED, session=session))
        emitter.emit(AuthEvent(kind=AuthEventKind.SIGNED_OUT))
        stream.close()

        kinds = [event.kind async for event in stream]
        assert kinds == []

    @pytest.mark.asyncio
    async def test_iteration_yields_published_events(self):
        emitter = AuthEventEmitter()
        stream = emitter.subscribe()
        emitter.emit(AuthEvent(kind=AuthEventKind.SIGNED_IN, session=make_session()))
        emitter.emit(AuthEvent(kind=AuthEventKind.SIGNED_OUT))

        first = await stream.__anext__()
        second = await stream.__anext__()

        assert first.kind == AuthEventKind.SIGNED_IN
        assert second.kind == AuthEventKind.SIGNED_OUT

    @pytest.mark.asyncio
    async def test_close_wakes_pending_consumer(self):
        """Test that closing ends an iteration blocked on an empty stream."""
        emitter = AuthEventEmitter()
        stream = emitter.subscribe()
        received = []

        async def consume():
            async for event in stream:
                received.append(event)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        stream.close()
        await asyncio.wait_for(task, timeout=1)

        assert received == []
        assert task.done()

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self):
        emitter = AuthEventEmitter()
        stream = emitter.subscribe()
        assert emitter.subscriber_count == 1

        stream.close()
        stream.close()

        assert emitter.subscriber_count == 0
        assert stream.closed is True
        assert emitter.emit(AuthEvent(kind=AuthEventKind.SIGNED_OUT)) == 0
        assert stream.publish(AuthEvent(kind=AuthEventKind.SIGNED_OUT)) is False

    @pytest.mark.asyncio
    async def test_emit_fans_out_to_every_stream(self):
        emitter = AuthEventEmitter()
        streams = [emitter.subscribe(), emitter.subscribe()]

        delivered = emitter.emit(AuthEvent(kind=AuthEventKind.USER_UPDATED, session=make_session()))

        assert delivered == 2
        for stream in streams:
            event = await stream.__anext__()
            assert event.kind == AuthEventKind.USER_UPDATED

        emitter.close_all()
        assert emitter.subscriber_count == 0

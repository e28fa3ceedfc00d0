"""Tests for shell output streams."""

from __future__ import annotations

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from sshdeck.core.stream import UNSUBSCRIBED, ShellStream, StreamHub


async def _collect(stream: ShellStream) -> list[bytes]:
    return [chunk async for chunk in stream]


@pytest.mark.asyncio
async def test_stream_delivers_then_stops_after_finish() -> None:
    hub = StreamHub("s1")
    stream = hub.subscribe()

    await hub.publish(b"hello ")
    await hub.publish(b"world")
    hub.finish("shell_closed")

    assert await _collect(stream) == [b"hello ", b"world"]
    assert stream.end_reason == "shell_closed"


@pytest.mark.asyncio
async def test_every_subscriber_gets_every_chunk() -> None:
    hub = StreamHub("s1")
    first = hub.subscribe()
    second = hub.subscribe()

    await hub.publish(b"a")
    await hub.publish(b"b")
    hub.finish("disconnected")

    assert await _collect(first) == [b"a", b"b"]
    assert await _collect(second) == [b"a", b"b"]


@pytest.mark.asyncio
async def test_subscribe_after_finish_is_already_ended() -> None:
    hub = StreamHub("s1")
    hub.finish("connection_lost")

    stream = hub.subscribe()

    assert stream.ended
    assert await stream.wait_ended() == "connection_lost"
    assert await _collect(stream) == []


@pytest.mark.asyncio
async def test_close_unsubscribes() -> None:
    hub = StreamHub("s1")
    stream = hub.subscribe()
    assert hub.subscriber_count == 1

    stream.close()

    assert hub.subscriber_count == 0
    assert stream.closed
    assert stream.end_reason == UNSUBSCRIBED
    await hub.publish(b"ignored")
    assert await _collect(stream) == []


@pytest.mark.asyncio
async def test_close_wakes_pending_iteration() -> None:
    hub = StreamHub("s1")
    stream = hub.subscribe()

    reader = asyncio.create_task(_collect(stream))
    await asyncio.sleep(0)
    stream.close()

    assert await asyncio.wait_for(reader, timeout=1) == []


@pytest.mark.asyncio
async def test_full_subscriber_applies_back_pressure() -> None:
    hub = StreamHub("s1", maxsize=1)
    stream = hub.subscribe()

    await hub.publish(b"1")
    blocked = asyncio.create_task(hub.publish(b"2"))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    assert await stream.__anext__() == b"1"
    await asyncio.wait_for(blocked, timeout=1)
    assert await stream.__anext__() == b"2"


@pytest.mark.asyncio
async def test_closing_full_subscriber_releases_publisher() -> None:
    hub = StreamHub("s1", maxsize=1)
    stream = hub.subscribe()

    await hub.publish(b"1")
    blocked = asyncio.create_task(hub.publish(b"2"))
    await asyncio.sleep(0.01)

    stream.close()

    await asyncio.wait_for(blocked, timeout=1)


@pytest.mark.asyncio
async def test_finish_releases_publisher_blocked_on_full_subscriber() -> None:
    hub = StreamHub("s1", maxsize=1)
    stalled = hub.subscribe()

    await hub.publish(b"1")
    blocked = asyncio.create_task(hub.publish(b"2"))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    hub.finish("connection_lost")

    await asyncio.wait_for(blocked, timeout=1)
    assert await _collect(stalled) == [b"1"]
    assert stalled.end_reason == "connection_lost"


@given(chunks=st.lists(st.binary(min_size=1, max_size=64), max_size=40))
@settings(max_examples=50, deadline=None)
def test_stream_preserves_byte_order(chunks: list[bytes]) -> None:
    """Concurrent producer and consumer see the exact remote byte sequence."""

    async def _run() -> list[bytes]:
        hub = StreamHub("s1", maxsize=4)
        stream = hub.subscribe()
        consumer = asyncio.create_task(_collect(stream))
        for chunk in chunks:
            await hub.publish(chunk)
        hub.finish("shell_closed")
        return await consumer

    received = asyncio.run(_run())

    assert received == chunks

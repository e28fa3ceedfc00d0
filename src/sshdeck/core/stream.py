# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Cancellable byte streams fed by a session's shell channel."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from sshdeck.constants import DEFAULT_STREAM_QUEUE_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable

UNSUBSCRIBED = "unsubscribed"


class ShellStream:
    """Async iterator over raw shell output chunks, in remote byte order.

    Iteration stops once the producing shell or session ends and every
    buffered chunk has been consumed, or as soon as ``close()`` is called.

    Usage:
        stream = session.subscribe()
        async for chunk in stream:
            sys.stdout.buffer.write(chunk)
    """

    def __init__(
        self,
        session_id: str,
        maxsize: int = DEFAULT_STREAM_QUEUE_SIZE,
        on_close: Callable[[ShellStream], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self._queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=maxsize)
        self._ended = asyncio.Event()
        self._end_reason: str | None = None
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ended(self) -> bool:
        return self._ended.is_set()

    @property
    def end_reason(self) -> str | None:
        return self._end_reason

    async def wait_ended(self) -> str | None:
        """Wait for the terminal notification and return its reason."""
        await self._ended.wait()
        return self._end_reason

    def close(self) -> None:
        """Unsubscribe. Buffered chunks are discarded."""
        if self._closed:
            return
        self._closed = True
        self._finish(UNSUBSCRIBED)
        # A publisher may be blocked on a full queue.
        while not self._queue.empty():
            self._queue.get_nowait()
        if self._on_close is not None:
            self._on_close(self)

    async def publish(self, chunk: bytes) -> None:
        """Enqueue a chunk, waiting while the queue is full.

        A publisher blocked on a full queue is released, and the chunk
        dropped, once the stream ends or is closed.
        """
        if self._closed or self._ended.is_set():
            return
        if not self._queue.full():
            self._queue.put_nowait(chunk)
            return

        put_task = asyncio.ensure_future(self._queue.put(chunk))
        end_task = asyncio.ensure_future(self._ended.wait())
        try:
            await asyncio.wait({put_task, end_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (put_task, end_task):
                if not task.done():
                    task.cancel()

    def _finish(self, reason: str) -> None:
        if self._ended.is_set():
            return
        self._end_reason = reason
        self._ended.set()

    def __aiter__(self) -> ShellStream:
        return self

    async def __anext__(self) -> bytes:
        while True:
            if self._closed:
                raise StopAsyncIteration
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._ended.is_set():
                raise StopAsyncIteration

            get_task = asyncio.ensure_future(self._queue.get())
            end_task = asyncio.ensure_future(self._ended.wait())
            try:
                done, _ = await asyncio.wait({get_task, end_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (get_task, end_task):
                    if not task.done():
                        task.cancel()

            if get_task in done and not self._closed:
                return get_task.result()


class StreamHub:
    """Fan-out of one shell's output to any number of subscribers."""

    def __init__(self, session_id: str, maxsize: int = DEFAULT_STREAM_QUEUE_SIZE) -> None:
        self._session_id = session_id
        self._maxsize = maxsize
        self._streams: list[ShellStream] = []
        self._finished_reason: str | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._streams)

    def subscribe(self, maxsize: int | None = None) -> ShellStream:
        stream = ShellStream(self._session_id, maxsize or self._maxsize, on_close=self._discard)
        if self._finished_reason is not None:
            stream._finish(self._finished_reason)
        else:
            self._streams.append(stream)
        return stream

    async def publish(self, chunk: bytes) -> None:
        for stream in list(self._streams):
            await stream.publish(chunk)

    def finish(self, reason: str) -> None:
        """Deliver the terminal notification to every subscriber."""
        if self._finished_reason is not None:
            return
        self._finished_reason = reason
        streams, self._streams = self._streams, []
        for stream in streams:
            stream._finish(reason)

    def _discard(self, stream: ShellStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

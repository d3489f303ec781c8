"""
Channel — a bounded, closable asyncio queue.

Producers block on send() while the buffer is full, so a slow consumer
throttles the producer. close() marks the end of the stream: receivers
first get everything still buffered, then stop.

Usage:
    ch: Channel[str] = Channel(capacity=1)

    async def produce():
        try:
            for item in items:
                await ch.send(item)
        finally:
            ch.close()

    async for item in ch:
        ...
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Generic, TypeVar

from tablekv.core.errors import ChannelClosedError

T = TypeVar("T")


class Channel(Generic[T]):
    """Bounded FIFO with an explicit end-of-stream."""

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        # Items dequeued by a receiver that was cancelled before returning them
        self._held: deque[T] = deque()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return len(self._held) + self._queue.qsize()

    # ━━━ Producer side ━━━

    async def send(self, item: T) -> None:
        """Push an item, waiting for buffer space."""
        if self.closed:
            raise ChannelClosedError("send on closed channel")
        await self._queue.put(item)

    def send_nowait(self, item: T) -> None:
        """Push without waiting. Raises asyncio.QueueFull when the buffer is full."""
        if self.closed:
            raise ChannelClosedError("send on closed channel")
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Mark end of stream. Closing twice is an error."""
        if self.closed:
            raise ChannelClosedError("close of closed channel")
        self._closed.set()

    # ━━━ Consumer side ━━━

    async def receive(self) -> T:
        """
        Pop the next item.

        Raises ChannelClosedError once the channel is closed and drained.
        """
        while True:
            if self._held:
                return self._held.popleft()
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self.closed:
                raise ChannelClosedError("channel closed")

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait(
                    {getter, closer}, return_when=asyncio.FIRST_COMPLETED
                )
            except asyncio.CancelledError:
                if getter.done() and not getter.cancelled():
                    self._held.append(getter.result())
                raise
            finally:
                closer.cancel()
                if not getter.done():
                    # Queue.get() leaves the item queued when cancelled
                    getter.cancel()

            if getter.done() and not getter.cancelled():
                return getter.result()

    def __aiter__(self) -> Channel[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None

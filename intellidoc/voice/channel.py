"""
IntelliDoc Bounded Channel
==========================
Single-producer / single-consumer stream on top of asyncio.Queue.

Every stream the engine hands out (transcriptions, synthesized audio
chunks, reading positions) is a Channel. Sends block while the queue is
full, so a slow consumer slows the producer down instead of growing
memory without bound.

Usage:
    channel = Channel(capacity=100)

    # producer task
    await channel.send(item)
    await channel.close()

    # consumer
    async for item in channel:
        ...
"""

import asyncio
import logging
from typing import AsyncIterator, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 100

_CLOSED = object()


class Channel(Generic[T]):
    """Bounded async channel with explicit end-of-stream."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._finished = False
        self._receiver_closed = False

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    @property
    def closed(self) -> bool:
        """True once the producer has closed the channel."""
        return self._closed

    @property
    def receiver_closed(self) -> bool:
        """True once the consumer has stopped listening."""
        return self._receiver_closed

    async def send(self, item: T) -> bool:
        """
        Send an item, waiting while the channel is full.

        Returns:
            False if the channel is closed on either side (item dropped)
        """
        if self._closed or self._receiver_closed:
            return False
        await self._queue.put(item)
        return True

    async def close(self) -> None:
        """Mark end-of-stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._receiver_closed:
            return
        await self._queue.put(_CLOSED)

    async def recv(self) -> Optional[T]:
        """
        Receive the next item.

        Returns:
            The next item, or None once the stream has ended
        """
        if self._finished:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            return None
        return item

    async def aclose(self) -> None:
        """Consumer side: stop receiving and discard anything buffered."""
        self._receiver_closed = True
        self._finished = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        item = await self.recv()
        if item is None and self._finished:
            raise StopAsyncIteration
        return item

    async def collect(self, timeout: Optional[float] = None) -> list:
        """Drain the channel into a list until it ends."""
        async def _drain() -> list:
            return [item async for item in self]

        if timeout is None:
            return await _drain()
        return await asyncio.wait_for(_drain(), timeout)

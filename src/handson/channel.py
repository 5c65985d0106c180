"""Bounded, ordered, single-producer/multi-consumer async channel."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Generic, TypeVar

logger = logging.getLogger("handson.channel")

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """One consumer's view of a channel. Iterate it with ``async for``.

    Items arrive in publish order. After the channel closes, items already
    queued are still delivered before iteration stops.
    """

    def __init__(self, channel: BroadcastChannel[T], maxsize: int):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._done = False
        self._end_when_drained = False
        self.dropped = 0

    def _end(self):
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # No room for the marker; stop once the backlog is consumed.
            self._end_when_drained = True

    def _offer(self, item: T):
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(item)
            self.dropped += 1
            logger.debug("Subscriber full, dropped oldest item (%d dropped)", self.dropped)

    async def get(self) -> T:
        """Next item. Raises ``StopAsyncIteration`` once closed and drained."""
        if self._done or (self._end_when_drained and self._queue.empty()):
            self._done = True
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._done = True
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()

    def close(self):
        """Stop receiving; pending items are discarded."""
        self._channel._unsubscribe(self)
        self._done = True

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class BroadcastChannel(Generic[T]):
    """Fans every published item out to all current subscribers.

    Each subscriber owns a bounded queue. ``publish`` never waits: when a
    subscriber has fallen ``maxsize`` items behind, its oldest queued item
    is dropped, so a slow reader loses history instead of stalling the
    producer. Surviving items keep publish order.
    """

    def __init__(self, maxsize: int = 8):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    def subscribe(self, maxsize: int | None = None) -> Subscription[T]:
        if self._closed:
            raise RuntimeError("Channel is closed")
        sub: Subscription[T] = Subscription(self, maxsize or self.maxsize)
        self._subscribers.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription[T]):
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    async def publish(self, item: T):
        """Hand ``item`` to every subscriber without waiting on any of them."""
        if self._closed:
            raise RuntimeError("Channel is closed")
        for sub in list(self._subscribers):
            sub._offer(item)

    def close(self):
        """Signal end of stream to every subscriber without waiting on them."""
        if self._closed:
            return
        self._closed = True
        for sub in list(self._subscribers):
            sub._end()
        logger.debug("Channel closed (%d subscribers)", len(self._subscribers))

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

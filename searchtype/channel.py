"""Bounded queues connecting the pipeline stages.

A channel with ``capacity=0`` is a synchronous handoff: :meth:`send`
returns only once the receiver has taken the item, so a slow consumer
pushes back on its producer. With a positive capacity the sender only
blocks while the buffer is full. Either way a blocked sender or receiver
is released with :class:`PipelineAborted` when shutdown fires.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from searchtype.errors import ChannelClosed
from searchtype.shutdown import Shutdown

_CLOSED = object()


class Channel[T]:
    def __init__(self, shutdown: Shutdown, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._shutdown = shutdown
        self._capacity = capacity
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max(capacity, 1))
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T) -> None:
        if self._closed:
            raise ChannelClosed("send on closed channel")
        await self._shutdown.guard(self._queue.put(item))
        if self._capacity == 0:
            await self._shutdown.guard(self._queue.join())

    async def close(self) -> None:
        """Mark the end of the stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._shutdown.is_set:
            return
        await self._shutdown.guard(self._queue.put(_CLOSED))

    async def receive(self) -> T:
        """Return the next item, or raise :class:`ChannelClosed` at the end."""
        item = await self._shutdown.guard(self._queue.get())
        self._queue.task_done()
        if item is _CLOSED:
            # leave the marker for any other receiver
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed()
        return item  # type: ignore[return-value]

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                item = await self.receive()
            except ChannelClosed:
                return
            yield item

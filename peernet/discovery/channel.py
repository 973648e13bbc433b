"""
Update channel between a PeerReceiver and its consumer.
"""

import asyncio
from typing import Generic, TypeVar

from ..errors import SinkClosedError

T = TypeVar('T')

_CLOSED = object()


class UpdateChannel(Generic[T]):
    """
    Push channel for membership updates.

    The producer never blocks: if the channel is closed or full, send()
    raises SinkClosedError and the producer's loop ends. Back-pressure is
    the consumer's job (pick maxsize, keep reading).
    """

    def __init__(self, maxsize: int = 0):
        # One extra slot so close() can always wake a waiting consumer
        self._queue: asyncio.Queue = asyncio.Queue(maxsize + 1 if maxsize > 0 else 0)
        self.maxsize = maxsize
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def send(self, item: T):
        """
        Deliver an item without waiting.

        Raises:
            SinkClosedError: if the channel is closed or at capacity
        """
        if self._closed:
            raise SinkClosedError("Update channel is closed")
        if self.maxsize > 0 and self._queue.qsize() >= self.maxsize:
            raise SinkClosedError(f"Update channel is full ({self.maxsize} pending)")
        self._queue.put_nowait(item)

    async def get(self) -> T:
        """
        Wait for the next item.

        Raises:
            SinkClosedError: once the channel is closed and drained
        """
        if self._closed and self._queue.empty():
            raise SinkClosedError("Update channel is closed")
        item = await self._queue.get()
        if item is _CLOSED:
            # Hand the sentinel on so every other waiter wakes too
            self._queue.put_nowait(_CLOSED)
            raise SinkClosedError("Update channel is closed")
        return item

    def close(self):
        """
        Close the channel; pending items can still be read.

        Every consumer waiting in get() is woken with SinkClosedError.
        """
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except SinkClosedError:
            raise StopAsyncIteration

"""
Message-passing fan-out for connection updates.

A [Broadcaster][nostrlink.core.stream.Broadcaster] delivers every published
item, in publish order, to each
[UpdateStream][nostrlink.core.stream.UpdateStream] obtained from
[subscribe()][nostrlink.core.stream.Broadcaster.subscribe]. Each stream has
its own queue, so a slow consumer never reorders or blocks another one.
Closing the broadcaster ends every stream's ``async for`` loop once the
items already queued have been consumed.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar


T = TypeVar("T")

_END = object()


class UpdateStream(Generic[T]):
    """Async iterator over the items of one [Broadcaster][nostrlink.core.stream.Broadcaster] subscriber.

    Examples:
        ```python
        async for update in connection.observe():
            ...
        ```
    """

    def __init__(self, owner: Broadcaster[T]) -> None:
        self._owner = owner
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._ended = False

    def __aiter__(self) -> UpdateStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._ended:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._ended = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    @property
    def pending(self) -> int:
        """Items queued and not yet consumed."""
        return self._queue.qsize()

    def _put(self, item: object) -> None:
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Stop receiving items; the iterator ends after what is already queued."""
        self._owner._discard(self)
        self._put(_END)


class Broadcaster(Generic[T]):
    """Ordered fan-out of items to any number of streams."""

    def __init__(self) -> None:
        self._streams: list[UpdateStream[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._streams)

    def subscribe(self) -> UpdateStream[T]:
        """Return a new stream receiving every item published from now on.

        A stream obtained after [close()][nostrlink.core.stream.Broadcaster.close]
        ends immediately.
        """
        stream = UpdateStream(self)
        if self._closed:
            stream._put(_END)
        else:
            self._streams.append(stream)
        return stream

    def publish(self, item: T) -> None:
        """Queue *item* on every open stream. Never blocks."""
        for stream in list(self._streams):
            stream._put(item)

    def close(self) -> None:
        """End every stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        streams, self._streams = self._streams, []
        for stream in streams:
            stream._put(_END)

    def _discard(self, stream: UpdateStream[T]) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

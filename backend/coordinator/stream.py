from __future__ import annotations

import asyncio
from typing import Union

from coordinator.coordinator import ClassificationEvent, MapCoordinator
from coordinator.errors import LoadFailure

StreamItem = Union[ClassificationEvent, LoadFailure]

_CLOSED = object()


class ClassificationStream:
    """
    Async iterator over classification events and load failures of one coordinator.

    Consumers only need the latest state, so when `max_pending` items are
    waiting the oldest one is dropped. Must be created on the coordinator's
    event loop.
    """

    def __init__(
        self,
        coordinator: MapCoordinator,
        *,
        max_pending: int = 16,
        include_current: bool = True,
    ):
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max(1, int(max_pending)))
        self._closed = False
        self._unsubscribe = [
            coordinator.subscribe(self._put),
            coordinator.on_load_failure(self._put),
            coordinator.on_close(self.close),
        ]
        if include_current and coordinator.last_event is not None:
            self._put(coordinator.last_event)
        if coordinator.closed:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for unsub in self._unsubscribe:
            unsub()
        self._unsubscribe = []
        self._put_raw(_CLOSED)

    def _put(self, item: StreamItem) -> None:
        if not self._closed:
            self._put_raw(item)

    def _put_raw(self, item: object) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def __aiter__(self) -> "ClassificationStream":
        return self

    async def __anext__(self) -> StreamItem:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def __aenter__(self) -> "ClassificationStream":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()

"""Async stream operators used to connect pipeline stages.

Stages are async iterators pulled by the next stage, so nothing is read
ahead of what downstream asks for. The operators here add bounded
concurrency (ordered and unordered) and a bounded fan-out to several sinks;
each keeps its buffer to a fixed size so a slow sink pauses the source.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Deque,
    List,
    Optional,
    Set,
    TypeVar,
)

T = TypeVar("T")
U = TypeVar("U")

_END = object()


async def filter_stream(source: AsyncIterable[T], predicate: Callable[[T], bool]) -> AsyncIterator[T]:
    async for item in source:
        if predicate(item):
            yield item


async def map_stream(source: AsyncIterable[T], fn: Callable[[T], U]) -> AsyncIterator[U]:
    async for item in source:
        yield fn(item)


async def ordered_map(
    source: AsyncIterable[T],
    fn: Callable[[T], Awaitable[U]],
    concurrency: Optional[int],
) -> AsyncIterator[U]:
    """Run `fn` over the stream with at most `concurrency` calls pending, yielding in input order.

    `concurrency=None` is unbounded: the source is drained as fast as it produces.
    """
    pending: Deque["asyncio.Future[U]"] = deque()
    try:
        async for item in source:
            pending.append(asyncio.ensure_future(fn(item)))
            if concurrency is not None and len(pending) >= concurrency:
                yield await pending.popleft()
            while pending and pending[0].done():
                yield pending.popleft().result()
        while pending:
            yield await pending.popleft()
    finally:
        for fut in pending:
            fut.cancel()


async def for_each_concurrent(
    source: AsyncIterable[T],
    fn: Callable[[T], Awaitable[Any]],
    concurrency: int,
) -> None:
    """Consume the stream calling `fn` with at most `concurrency` calls in flight, in any order.

    Returns once every call has settled. An exception escaping `fn` is fatal:
    remaining calls are cancelled and the exception propagates.
    """
    in_flight: Set["asyncio.Future[Any]"] = set()
    try:
        async for item in source:
            if len(in_flight) >= concurrency:
                done, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                for fut in done:
                    fut.result()
            in_flight.add(asyncio.ensure_future(fn(item)))
        if in_flight:
            done, in_flight = await asyncio.wait(in_flight)
            for fut in done:
                fut.result()
    finally:
        for fut in in_flight:
            fut.cancel()


class Broadcast:
    """Fan one stream out to several consumers through bounded queues.

    `pump()` must run concurrently with every channel; it waits for room in
    each queue before pulling the next item, so the slowest consumer sets the
    pace and at most `buffer_size` items wait per consumer.
    """

    def __init__(self, source: AsyncIterable[T], consumers: int, *, buffer_size: int = 16):
        self._source = source
        self._queues: List[asyncio.Queue] = [asyncio.Queue(maxsize=buffer_size) for _ in range(consumers)]

    @property
    def buffered(self) -> int:
        return sum(q.qsize() for q in self._queues)

    async def pump(self) -> None:
        async for item in self._source:
            for q in self._queues:
                await q.put(item)
        for q in self._queues:
            await q.put(_END)

    async def channel(self, index: int) -> AsyncIterator[Any]:
        q = self._queues[index]
        while True:
            item = await q.get()
            if item is _END:
                return
            yield item


async def gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """Like asyncio.gather, but the first failure cancels every sibling before propagating."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]
        return [task.result() for task in tasks]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

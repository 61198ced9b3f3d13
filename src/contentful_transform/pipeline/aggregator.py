from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, Dict, List, Optional

from contentful_transform.core.contracts import EntryInfo, Record


class EntryAggregator:
    """Indexes every record that passes through, without delaying or altering it.

    `lookup` answers from what has been seen so far. An id that is absent
    is only "not yet resolvable" until `mark_complete()` is called at the end
    of the source; `wait_for` lets a validator wait for a record that is
    still further up the stream.
    """

    def __init__(self) -> None:
        self._index: Dict[str, EntryInfo] = {}
        self._waiters: Dict[str, List["asyncio.Future[Optional[EntryInfo]]"]] = {}
        self._complete = False

    def __len__(self) -> int:
        return len(self._index)

    @property
    def complete(self) -> bool:
        return self._complete

    def process(self, record: Record) -> Record:
        info = EntryInfo.from_record(record)
        if info.id:
            self._index[info.id] = info
            for waiter in self._waiters.pop(info.id, []):
                if not waiter.done():
                    waiter.set_result(info)
        return record

    async def stream(self, source: AsyncIterable[Record]) -> AsyncIterator[Record]:
        async for record in source:
            yield self.process(record)
        self.mark_complete()

    def lookup(self, id: str) -> Optional[EntryInfo]:
        return self._index.get(id)

    def mark_complete(self) -> None:
        """No more records will arrive; anything still missing is definitively missing."""
        self._complete = True
        waiters, self._waiters = self._waiters, {}
        for futures in waiters.values():
            for waiter in futures:
                if not waiter.done():
                    waiter.set_result(None)

    async def wait_for(self, id: str, timeout: float) -> Optional[EntryInfo]:
        """Wait up to `timeout` seconds for `id` to be indexed; None if it never shows up."""
        info = self._index.get(id)
        if info is not None or self._complete:
            return info

        waiter: "asyncio.Future[Optional[EntryInfo]]" = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(id, []).append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            futures = self._waiters.get(id)
            if futures and waiter in futures:
                futures.remove(waiter)
                if not futures:
                    del self._waiters[id]

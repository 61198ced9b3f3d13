import asyncio

import pytest

from contentful_transform.pipeline.aggregator import EntryAggregator


def entry(id, *, ct="post", published=True):
    sys = {"id": id, "type": "Entry", "contentType": {"sys": {"type": "Link", "id": ct}}}
    if published:
        sys["revision"] = 1
    return {"sys": sys, "fields": {}}


async def from_list(items):
    for item in items:
        yield item


def test_process_indexes_without_altering_record():
    aggregator = EntryAggregator()
    record = entry("e1", ct="person", published=False)

    assert aggregator.process(record) is record

    info = aggregator.lookup("e1")
    assert info.type == "Entry"
    assert info.content_type_id == "person"
    assert info.published is False
    assert aggregator.lookup("missing") is None


@pytest.mark.asyncio
async def test_stream_passes_records_through_and_marks_complete():
    aggregator = EntryAggregator()
    records = [entry("e1"), entry("e2")]

    out = [r async for r in aggregator.stream(from_list(records))]

    assert out == records
    assert len(aggregator) == 2
    assert aggregator.complete


@pytest.mark.asyncio
async def test_wait_for_resolves_when_record_arrives():
    aggregator = EntryAggregator()

    waiter = asyncio.ensure_future(aggregator.wait_for("e1", timeout=1.0))
    await asyncio.sleep(0)
    aggregator.process(entry("e1"))

    info = await waiter
    assert info.id == "e1"


@pytest.mark.asyncio
async def test_wait_for_returns_none_once_complete_or_timed_out():
    aggregator = EntryAggregator()

    assert await aggregator.wait_for("e1", timeout=0.01) is None

    waiter = asyncio.ensure_future(aggregator.wait_for("e2", timeout=1.0))
    await asyncio.sleep(0)
    aggregator.mark_complete()

    assert await waiter is None
    assert await aggregator.wait_for("e3", timeout=1.0) is None

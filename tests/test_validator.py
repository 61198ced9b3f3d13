import asyncio

import httpx
import pytest

from contentful_transform.connectors.contentful.client import ContentfulClient
from contentful_transform.connectors.contentful.types import SpaceConnection
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.pipeline.aggregator import EntryAggregator
from contentful_transform.pipeline.content_types import ContentTypeCache
from contentful_transform.pipeline.validator import Validator

POST = {
    "sys": {"id": "post", "type": "ContentType"},
    "fields": [
        {"id": "title", "type": "Symbol", "required": True},
        {"id": "views", "type": "Integer"},
        {"id": "tags", "type": "Array", "items": {"type": "Symbol"}},
        {
            "id": "author",
            "type": "Link",
            "linkType": "Entry",
            "validations": [{"linkContentType": ["person"]}],
        },
        {"id": "hero", "type": "Link", "linkType": "Asset"},
    ],
}
PERSON = {"sys": {"id": "person", "type": "ContentType"}, "fields": [{"id": "name", "type": "Symbol"}]}


def link(id, link_type="Entry"):
    return {"sys": {"type": "Link", "linkType": link_type, "id": id}}


def entry(id, ct, fields, *, published=True):
    sys = {"id": id, "type": "Entry", "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": ct}}}
    if published:
        sys["revision"] = 1
    return {"sys": sys, "fields": fields}


def person(id="p1", *, published=True):
    return entry(id, "person", {"name": {"en-US": "Ada"}}, published=published)


def make_validator(*records, client=None, complete=True, lookup_timeout=1.0):
    cache = ContentTypeCache()
    cache.add(POST)
    cache.add(PERSON)
    aggregator = EntryAggregator()
    for record in records:
        aggregator.process(record)
    if complete:
        aggregator.mark_complete()
    return Validator(
        content_type_getter=cache.get,
        aggregator=aggregator,
        client=client,
        lookup_timeout=lookup_timeout,
    )


async def from_list(items):
    for item in items:
        yield item


@pytest.mark.asyncio
async def test_valid_entry_has_no_errors():
    validator = make_validator(person())
    record = entry(
        "e1",
        "post",
        {
            "title": {"en-US": "Hello", "de-DE": "Hallo"},
            "views": {"en-US": 3},
            "tags": {"en-US": ["a", "b"]},
            "author": {"en-US": link("p1")},
        },
    )

    outcome = await validator.validate(record)

    assert outcome.valid, outcome.errors
    assert outcome.record is record


@pytest.mark.asyncio
async def test_field_errors_are_reported_by_path():
    validator = make_validator()
    record = entry(
        "e1",
        "post",
        {
            "views": {"en-US": "three"},
            "tags": {"en-US": ["a", 2]},
            "subtitle": {"en-US": "x"},
        },
    )

    outcome = await validator.validate(record)

    assert set(outcome.errors) == {
        "fields.subtitle is not defined on content type post",
        "fields.title is required",
        "fields.views.en-US expected Integer, got str",
        "fields.tags.en-US[1] expected Symbol, got int",
    }


@pytest.mark.asyncio
async def test_bare_field_value_is_a_malformed_locale_value():
    validator = make_validator()

    outcome = await validator.validate(entry("e1", "post", {"title": "bare", "views": {"en-US": 1}}))

    assert outcome.errors == ["fields.title must be a mapping of locale codes to values"]


@pytest.mark.asyncio
async def test_unknown_content_type_is_an_error():
    outcome = await make_validator().validate(entry("e1", "nope", {}))

    assert outcome.errors == ["sys.contentType: unknown content type 'nope'"]


@pytest.mark.asyncio
async def test_link_to_missing_entry_is_reported():
    validator = make_validator()
    record = entry("e1", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("p9")}})

    outcome = await validator.validate(record)

    assert outcome.errors == ["fields.author.en-US links to missing Entry p9"]


@pytest.mark.asyncio
async def test_link_checks_type_content_type_and_published_state():
    validator = make_validator(
        person("p1", published=False),
        entry("e2", "post", {"title": {"en-US": "other"}}),
    )

    unpublished = await validator.validate(
        entry("e1", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("p1")}})
    )
    wrong_ct = await validator.validate(
        entry("e3", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("e2")}})
    )
    wrong_link_type = await validator.validate(
        entry("e4", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("a1", "Asset")}})
    )
    draft = await validator.validate(
        entry("e5", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("p1")}}, published=False)
    )

    assert unpublished.errors == ["fields.author.en-US links to unpublished Entry p1"]
    assert wrong_ct.errors == ["fields.author.en-US links to e2 of content type post, expected one of person"]
    assert wrong_link_type.errors == ["fields.author.en-US expected a link to Entry, got a link to Asset"]
    assert draft.valid


@pytest.mark.asyncio
async def test_assets_are_not_checked():
    outcome = await make_validator().validate({"sys": {"id": "a1", "type": "Asset"}, "fields": {"x": 1}})

    assert outcome.valid


@pytest.mark.asyncio
async def test_stream_waits_for_targets_further_down_the_stream():
    cache = ContentTypeCache()
    cache.add(POST)
    cache.add(PERSON)
    aggregator = EntryAggregator()
    validator = Validator(content_type_getter=cache.get, aggregator=aggregator, lookup_timeout=1.0)
    invalid = []
    records = [
        entry("e1", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("p1")}}),
        entry("e2", "post", {"title": {"en-US": "y"}, "author": {"en-US": link("p9")}}),
        person("p1"),
    ]

    out = [r async for r in validator.stream(aggregator.stream(from_list(records)), on_invalid=invalid.append)]

    assert [r["sys"]["id"] for r in out] == ["e1", "e2", "p1"]
    assert [o.record_id for o in invalid] == ["e2"]
    assert invalid[0].errors == ["fields.author.en-US links to missing Entry p9"]


@pytest.mark.asyncio
async def test_live_lookup_is_shared_per_target():
    lookups = []

    def handler(request):
        lookups.append(dict(request.url.params))
        return httpx.Response(200, json={"items": [person("p1")]})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ContentfulClient(SpaceConnection("space1", "delivery-token"), http=http)
    validator = make_validator(client=client, complete=False)
    records = [
        entry(f"e{i}", "post", {"title": {"en-US": "x"}, "author": {"en-US": link("p1")}}) for i in range(3)
    ]

    outcomes = await asyncio.gather(*(validator.validate(r) for r in records))

    assert all(o.valid for o in outcomes)
    assert lookups == [{"sys.id": "p1", "limit": "1"}]


@pytest.mark.asyncio
async def test_lookup_timeout_is_reported_as_unresolvable():
    async def handler(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={"items": []})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ContentfulClient(SpaceConnection("space1", "delivery-token"), http=http)
    validator = make_validator(client=client, complete=False, lookup_timeout=0.05)

    outcome = await validator.validate(
        entry("e1", "post", {"title": {"en-US": "x"}, "hero": {"en-US": link("a1", "Asset")}})
    )

    assert outcome.errors == ["fields.hero.en-US link to Asset a1 could not be resolved"]


@pytest.mark.asyncio
async def test_live_lookup_without_a_client_is_a_configuration_error():
    validator = make_validator()

    with pytest.raises(ConfigurationError, match="no client"):
        await validator._live_lookup("Entry", "p1")


@pytest.mark.asyncio
async def test_content_type_fetch_without_a_client_is_a_configuration_error():
    cache = ContentTypeCache()

    assert await cache.get("missing") is None
    with pytest.raises(ConfigurationError, match="no client"):
        await cache._fetch("missing")

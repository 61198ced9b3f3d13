import pytest

from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.pipeline.content_types import ContentTypeCache
from contentful_transform.pipeline.filter import FilterStage
from contentful_transform.pipeline.transform import TransformStage

POST = {
    "sys": {"id": "post", "type": "ContentType"},
    "fields": [{"id": "title", "type": "Symbol"}, {"id": "slug", "type": "Symbol"}, {"id": "summary", "type": "Text"}],
}


def post(id, title, slug):
    return {
        "sys": {"id": id, "type": "Entry", "contentType": {"sys": {"type": "Link", "id": "post"}}},
        "fields": {"title": {"en-US": title, "de-DE": title}, "slug": {"en-US": slug}},
    }


def cache():
    types = ContentTypeCache()
    types.add(POST)
    return types


async def from_list(items):
    for item in items:
        yield item


@pytest.mark.asyncio
async def test_filter_expression_sees_default_locale_fields():
    stage = FilterStage('slug.startswith("news-")')
    records = [post("e1", "A", "news-a"), post("e2", "B", "about")]

    out = [r async for r in stage.stream(from_list(records))]

    assert [r["sys"]["id"] for r in out] == ["e1"]


def test_filter_can_use_sys_and_other_locales():
    stage = FilterStage('sys["id"] == "e2" and fields["title"]["de-DE"] == "B"')

    assert stage.matches(post("e2", "B", "b"))
    assert not stage.matches(post("e1", "A", "a"))


def test_filter_accepts_callable():
    stage = FilterStage(lambda record: record["sys"]["id"] == "e1")

    assert stage.matches(post("e1", "A", "a"))


def test_invalid_filter_expression_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="Invalid filter"):
        FilterStage("slug ==")


def test_filter_runtime_error_names_the_record():
    stage = FilterStage("missing_name > 1")

    with pytest.raises(ConfigurationError, match="filter failed on e1"):
        stage.matches(post("e1", "A", "a"))


@pytest.mark.asyncio
async def test_transform_writes_reassigned_fields_back_to_default_locale():
    stage = TransformStage("title = title.upper()\nsummary = slug + '!'", cache().get)
    record = post("e1", "Hello", "hello")

    out = await stage.apply(record)

    assert out is record
    assert record["fields"]["title"] == {"en-US": "HELLO", "de-DE": "Hello"}
    assert record["fields"]["summary"] == {"en-US": "hello!"}
    assert record["fields"]["slug"] == {"en-US": "hello"}


@pytest.mark.asyncio
async def test_transform_can_edit_record_directly():
    stage = TransformStage('_entry["fields"]["title"]["de-DE"] = "Servus"', cache().get)
    record = post("e1", "Hello", "hello")

    await stage.apply(record)

    assert record["fields"]["title"] == {"en-US": "Hello", "de-DE": "Servus"}


@pytest.mark.asyncio
async def test_transform_leaves_assets_untouched():
    stage = TransformStage("title = 'x'", cache().get)
    asset = {"sys": {"id": "a1", "type": "Asset"}, "fields": {"title": {"en-US": "photo"}}}

    out = await stage.apply(asset)

    assert out["fields"]["title"] == {"en-US": "photo"}


@pytest.mark.asyncio
async def test_transform_callable_may_replace_record():
    replacement = {"sys": {"id": "e9", "type": "Entry"}, "fields": {}}
    stage = TransformStage(lambda record: replacement, cache().get)

    records = [r async for r in stage.stream(from_list([post("e1", "A", "a")]))]

    assert records == [replacement]


@pytest.mark.asyncio
async def test_transform_runtime_error_is_a_configuration_error():
    stage = TransformStage("title = title + 1", cache().get)

    with pytest.raises(ConfigurationError, match="transform failed on e1"):
        await stage.apply(post("e1", "A", "a"))

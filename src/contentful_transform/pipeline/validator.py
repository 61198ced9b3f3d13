from __future__ import annotations

import asyncio
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

from contentful_transform.connectors.contentful.client import ContentfulClient
from contentful_transform.core.contracts import (
    ContentType,
    EntryInfo,
    Record,
    ValidationOutcome,
    content_type_id,
    is_link,
    is_published,
    record_type,
)
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.core.logger import get_logger
from contentful_transform.pipeline.aggregator import EntryAggregator
from contentful_transform.pipeline.stream import ordered_map

log = get_logger(__name__)

ContentTypeGetter = Callable[[str], Awaitable[Optional[ContentType]]]


class _Unresolvable:
    def __repr__(self) -> str:
        return "UNRESOLVABLE"


UNRESOLVABLE = _Unresolvable()

Resolution = Union[EntryInfo, None, _Unresolvable]

# (path, link, expected link type, allowed content type ids)
_PendingLink = Tuple[str, Dict[str, Any], Optional[str], List[str]]


def _matches_type(field_type: str, value: Any) -> bool:
    if field_type in ("Symbol", "Text", "Date"):
        return isinstance(value, str)
    if field_type == "Integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type == "Number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type == "Boolean":
        return isinstance(value, bool)
    if field_type == "Location":
        return isinstance(value, dict) and "lat" in value and "lon" in value
    if field_type == "RichText":
        return isinstance(value, dict)
    if field_type == "Object":
        return isinstance(value, (dict, list))
    # Unknown field types are not checked
    return True


def _allowed_content_types(definition: Dict[str, Any]) -> List[str]:
    allowed: List[str] = []
    for rule in definition.get("validations") or []:
        allowed.extend(rule.get("linkContentType") or [])
    return allowed


class Validator:
    """Checks entries against their content type and resolves every link they contain.

    Link targets are looked up in the aggregator first. With a `client`, the
    rest are fetched live (at most `max_concurrent_lookups` at a time, one
    request per id); without one, the validator waits for the target to come
    down the stream. Either way a lookup gives up after `lookup_timeout`
    seconds and is reported as unresolvable.

    Assets are passed through unchecked. Invalid records are never dropped.
    """

    def __init__(
        self,
        *,
        content_type_getter: ContentTypeGetter,
        aggregator: EntryAggregator,
        client: Optional[ContentfulClient] = None,
        max_concurrent_lookups: int = 4,
        lookup_timeout: float = 10.0,
        max_concurrent_entries: Optional[int] = None,
    ):
        self.content_type_getter = content_type_getter
        self.aggregator = aggregator
        self.client = client
        self.lookup_timeout = lookup_timeout
        self.max_concurrent_entries = max_concurrent_entries

        self._lookup_slots = asyncio.Semaphore(max_concurrent_lookups)
        self._lookups: Dict[str, "asyncio.Task[Resolution]"] = {}
        self._resolved: Dict[str, Resolution] = {}

    async def stream(
        self,
        source: AsyncIterable[Record],
        *,
        on_invalid: Optional[Callable[[ValidationOutcome], None]] = None,
    ) -> AsyncIterator[Record]:
        async for outcome in ordered_map(source, self.validate, self.max_concurrent_entries):
            if not outcome.valid and on_invalid is not None:
                on_invalid(outcome)
            yield outcome.record

    async def validate(self, record: Record) -> ValidationOutcome:
        outcome = ValidationOutcome(record=record)
        if record_type(record) != "Entry":
            return outcome

        ct_id = content_type_id(record)
        content_type = await self.content_type_getter(ct_id) if ct_id else None
        if content_type is None:
            outcome.errors.append(f"sys.contentType: unknown content type {ct_id!r}")
            return outcome

        fields = record.get("fields") or {}
        if not isinstance(fields, dict):
            outcome.errors.append("fields must be an object")
            return outcome

        definitions = {d["id"]: d for d in content_type.get("fields") or [] if not d.get("deleted")}
        for name in fields:
            if name not in definitions:
                outcome.errors.append(f"fields.{name} is not defined on content type {ct_id}")

        links: List[_PendingLink] = []
        for name, definition in definitions.items():
            outcome.errors.extend(self._check_field(name, definition, fields.get(name), links))

        if links:
            results = await asyncio.gather(*(self._check_link(record, *link) for link in links))
            outcome.errors.extend(error for error in results if error)
        return outcome

    def _check_field(
        self,
        name: str,
        definition: Dict[str, Any],
        value: Any,
        links: List[_PendingLink],
    ) -> List[str]:
        path = f"fields.{name}"
        if value is None:
            return [f"{path} is required"] if definition.get("required") else []
        if not isinstance(value, dict):
            return [f"{path} must be a mapping of locale codes to values"]
        if definition.get("required") and all(v is None for v in value.values()):
            return [f"{path} is required"]

        errors: List[str] = []
        for locale, localized in value.items():
            if localized is None:
                continue
            errors.extend(self._check_value(definition, localized, f"{path}.{locale}", links))
        return errors

    def _check_value(
        self,
        definition: Dict[str, Any],
        value: Any,
        path: str,
        links: List[_PendingLink],
    ) -> List[str]:
        field_type = definition.get("type")
        if field_type == "Array":
            if not isinstance(value, list):
                return [f"{path} expected Array, got {type(value).__name__}"]
            items = definition.get("items") or {}
            errors: List[str] = []
            for i, item in enumerate(value):
                errors.extend(self._check_value(items, item, f"{path}[{i}]", links))
            return errors

        if field_type == "Link":
            if not is_link(value):
                return [f"{path} expected Link, got {type(value).__name__}"]
            expected = definition.get("linkType")
            actual = value["sys"].get("linkType")
            if expected and actual != expected:
                return [f"{path} expected a link to {expected}, got a link to {actual}"]
            links.append((path, value, expected or actual, _allowed_content_types(definition)))
            return []

        if field_type and not _matches_type(field_type, value):
            return [f"{path} expected {field_type}, got {type(value).__name__}"]
        return []

    async def _check_link(
        self,
        record: Record,
        path: str,
        link: Dict[str, Any],
        link_type: Optional[str],
        allowed: List[str],
    ) -> Optional[str]:
        target = link["sys"].get("id")
        link_type = link_type or "Entry"
        if not target:
            return f"{path} is a link without an id"

        resolved = await self.resolve(link_type, target)
        if resolved is UNRESOLVABLE:
            return f"{path} link to {link_type} {target} could not be resolved"
        if resolved is None:
            return f"{path} links to missing {link_type} {target}"
        if resolved.type != link_type:
            return f"{path} links to {resolved.type} {target}, expected {link_type}"
        if allowed and resolved.content_type_id not in allowed:
            return (
                f"{path} links to {target} of content type {resolved.content_type_id}, "
                f"expected one of {', '.join(allowed)}"
            )
        if is_published(record) and not resolved.published:
            return f"{path} links to unpublished {link_type} {target}"
        return None

    async def resolve(self, link_type: str, target: str) -> Resolution:
        """Resolve a link target: index first, then a live lookup or a wait on the stream."""
        info = self.aggregator.lookup(target)
        if info is not None:
            return info
        if target in self._resolved:
            return self._resolved[target]

        if self.client is None:
            info = await self.aggregator.wait_for(target, self.lookup_timeout)
            if info is None and not self.aggregator.complete:
                return UNRESOLVABLE
            return info

        task = self._lookups.get(target)
        if task is None:
            task = asyncio.ensure_future(self._live_lookup(link_type, target))
            self._lookups[target] = task
        try:
            return await asyncio.wait_for(asyncio.shield(task), self.lookup_timeout)
        except asyncio.TimeoutError:
            log.warning(f"Lookup of {link_type} {target} timed out after {self.lookup_timeout}s")
            return UNRESOLVABLE

    async def _live_lookup(self, link_type: str, target: str) -> Resolution:
        if self.client is None:
            raise ConfigurationError(f"Cannot look up {link_type} {target}: validator has no client")
        resource = "/assets" if link_type == "Asset" else "/entries"
        try:
            async with self._lookup_slots:
                resp = await self.client.get(resource, params={"sys.id": target, "limit": 1})
            if not resp.ok:
                log.warning(f"{resp.status_code} looking up {link_type} {target}")
                return UNRESOLVABLE

            items = (resp.json() or {}).get("items") or []
            resolved: Resolution = EntryInfo.from_record(items[0]) if items else None
            self._resolved[target] = resolved
            return resolved
        finally:
            self._lookups.pop(target, None)

from __future__ import annotations

from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional, Union

from contentful_transform.core.contracts import ContentType, Record, content_type_id, record_id, record_type
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.core.logger import get_logger
from contentful_transform.pipeline.expressions import compile_user_code, field_names, record_namespace

log = get_logger(__name__)

TransformFn = Callable[[Record], Optional[Record]]
ContentTypeGetter = Callable[[str], Awaitable[Optional[ContentType]]]


class TransformStage:
    """Rewrites entries with user-supplied Python statements.

    Each field's default-locale value is bound by name (every field declared
    on the content type, None when absent), along with `_entry` and
    `_content_type`. Names the code reassigns are written back into
    `fields[name][locale]`, e.g. `url = url.rstrip("/")`. The record itself
    can also be edited through `_entry`. Assets pass through untouched.

    A callable receives the record and returns a replacement, or None to
    keep the (possibly mutated) record.
    """

    def __init__(
        self,
        transform: Union[str, TransformFn],
        content_type_getter: ContentTypeGetter,
        *,
        locale: str = "en-US",
        verbose: bool = False,
    ):
        self.content_type_getter = content_type_getter
        self.locale = locale
        self.verbose = verbose
        self._fn: Optional[TransformFn] = transform if callable(transform) else None
        self._code = None if callable(transform) else compile_user_code(transform, "exec", "transform")

    async def apply(self, record: Record) -> Record:
        if record_type(record) != "Entry":
            return record
        if self._fn is not None:
            replaced = self._fn(record)
            return record if replaced is None else replaced

        ct_id = content_type_id(record)
        content_type = await self.content_type_getter(ct_id) if ct_id else None
        namespace = record_namespace(record, self.locale, content_type=content_type)
        names = list(field_names(record, content_type))
        before = {name: namespace[name] for name in names}

        try:
            exec(self._code, namespace)
        except Exception as exc:
            raise ConfigurationError(f"transform failed on {record_id(record)}: {exc!r}") from exc

        fields = record.setdefault("fields", {})
        for name in names:
            value = namespace.get(name)
            if value is before[name]:
                continue
            if isinstance(fields.get(name), dict):
                fields[name][self.locale] = value
            else:
                fields[name] = {self.locale: value}
            if self.verbose:
                log.info(f"{record_id(record)}: fields.{name}.{self.locale} = {value!r}")
        return record

    async def stream(self, source: AsyncIterable[Record]) -> AsyncIterator[Record]:
        async for record in source:
            yield await self.apply(record)

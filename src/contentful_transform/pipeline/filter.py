from __future__ import annotations

from typing import AsyncIterable, AsyncIterator, Callable, Union

from contentful_transform.core.contracts import Record, record_id
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.pipeline.expressions import compile_user_code, record_namespace
from contentful_transform.pipeline.stream import filter_stream

Predicate = Callable[[Record], bool]


class FilterStage:
    """Drops records for which `predicate` is falsy.

    `predicate` is a callable or a Python expression, e.g.
    `sys["contentType"]["sys"]["id"] == "post" and slug`, evaluated with each
    field's default-locale value bound by name plus `sys`, `fields` and `_entry`.
    """

    def __init__(self, predicate: Union[str, Predicate], *, locale: str = "en-US"):
        self.locale = locale
        if callable(predicate):
            self._predicate: Predicate = predicate
        else:
            self._predicate = self._compile(predicate)

    def _compile(self, expression: str) -> Predicate:
        code = compile_user_code(expression, "eval", "filter")

        def evaluate(record: Record) -> bool:
            try:
                return bool(eval(code, record_namespace(record, self.locale)))
            except Exception as exc:
                raise ConfigurationError(f"filter failed on {record_id(record)}: {exc!r}") from exc

        return evaluate

    def matches(self, record: Record) -> bool:
        return self._predicate(record)

    def stream(self, source: AsyncIterable[Record]) -> AsyncIterator[Record]:
        return filter_stream(source, self.matches)

from __future__ import annotations

import json
import sys
from typing import Any, AsyncIterator, Iterator, List, Optional, TextIO

from contentful_transform.connectors.registry import register_connector
from contentful_transform.core.contracts import Record, is_content_type, record_type
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.core.logger import get_logger
from contentful_transform.pipeline.content_types import ContentTypeCache

_RECORD_TYPES = ("Entry", "Asset", "ContentType")

log = get_logger(__name__)


def iter_typed_objects(value: Any) -> Iterator[Record]:
    """Depth-first walk yielding every object whose `sys.type` is Entry, Asset or ContentType.

    Typed objects are not descended into, so links and nested sys blocks are never emitted.
    """
    if isinstance(value, dict):
        if isinstance(value.get("sys"), dict) and record_type(value) in _RECORD_TYPES:
            yield value
            return
        for child in value.values():
            yield from iter_typed_objects(child)
    elif isinstance(value, list):
        for child in value:
            yield from iter_typed_objects(child)


def parse_json_values(text: str) -> List[Any]:
    """Values of a single JSON array, or of concatenated / newline-delimited JSON values."""
    decoder = json.JSONDecoder()
    values: List[Any] = []
    idx, end = 0, len(text)
    while True:
        while idx < end and text[idx].isspace():
            idx += 1
        if idx >= end:
            break
        value, idx = decoder.raw_decode(text, idx)
        values.append(value)

    if len(values) == 1 and isinstance(values[0], list):
        return values[0]
    return values


@register_connector(system_type="file")
class FileSource:
    """Reads records from a Contentful export document (a file or stdin).

    In document mode every nested Entry/Asset/ContentType is emitted, and
    ContentType objects are registered in `content_types` before the first
    record is yielded (they are dropped downstream). In raw mode the
    top-level JSON values are emitted unchanged.
    """

    def __init__(
        self,
        path: str = "-",
        *,
        raw: bool = False,
        content_types: Optional[ContentTypeCache] = None,
        stdin: Optional[TextIO] = None,
    ):
        self.path = path
        self.raw = raw
        self.content_types = content_types
        self._stdin = stdin

    def _read_text(self) -> str:
        if self.path == "-":
            return (self._stdin or sys.stdin).read()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read source file {self.path}: {exc}") from exc

    async def stream(self) -> AsyncIterator[Record]:
        text = self._read_text()
        try:
            if self.raw:
                values = parse_json_values(text)
            else:
                values = list(iter_typed_objects(json.loads(text)))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Malformed JSON in {self.path}: {exc}") from exc

        log.info(f"Parsed {len(values)} objects from {self.path}")
        # Exports list content types before or after entries; register them all up front
        if self.content_types is not None:
            for value in values:
                if is_content_type(value):
                    self.content_types.add(value)

        for value in values:
            yield value

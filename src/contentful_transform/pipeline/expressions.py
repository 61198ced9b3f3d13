from __future__ import annotations

import builtins
from types import CodeType
from typing import Any, Dict, Iterable, Optional

from contentful_transform.core.contracts import ContentType, Record
from contentful_transform.core.exceptions import ConfigurationError


def compile_user_code(source: str, mode: str, label: str) -> CodeType:
    """Compile a filter expression (`mode="eval"`) or transform statements (`mode="exec"`)."""
    try:
        return compile(source, f"<{label}>", mode)
    except SyntaxError as exc:
        raise ConfigurationError(f"Invalid {label} {source!r}: {exc}") from exc


def field_names(record: Record, content_type: Optional[ContentType] = None) -> Iterable[str]:
    names = list((record.get("fields") or {}).keys())
    if content_type:
        for definition in content_type.get("fields") or []:
            if definition["id"] not in names:
                names.append(definition["id"])
    return names


def record_namespace(
    record: Record,
    locale: str,
    *,
    content_type: Optional[ContentType] = None,
) -> Dict[str, Any]:
    """Names visible to user code: every field's `locale` value by name, plus the raw record."""
    fields = record.get("fields") or {}
    namespace: Dict[str, Any] = {}
    for name in field_names(record, content_type):
        localized = fields.get(name)
        namespace[name] = localized.get(locale) if isinstance(localized, dict) else None

    namespace.update(
        {
            "__builtins__": builtins,
            "sys": record.get("sys") or {},
            "fields": fields,
            "_entry": record,
            "_content_type": content_type,
        }
    )
    return namespace

from __future__ import annotations

import json
from typing import Any

DOCUMENT_OPEN = '{\n  "entries": [\n    '
DOCUMENT_SEPARATOR = ",\n    "
DOCUMENT_CLOSE = '\n  ]\n}\n'


class JsonStreamWriter:
    """
    Incremental JSON framing for a stream of records.

    Document mode produces `{"entries": [ ... ]}` with one compact record per
    line; raw mode produces newline-delimited JSON. Call `open()`, `item()`
    for each record, then `close()`; each returns the text to write.
    """

    def __init__(self, *, raw: bool = False):
        self.raw = raw
        self.count = 0

    def open(self) -> str:
        return "" if self.raw else DOCUMENT_OPEN

    def item(self, record: Any) -> str:
        text = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
        first = self.count == 0
        self.count += 1
        if self.raw:
            return text + "\n"
        return text if first else DOCUMENT_SEPARATOR + text

    def close(self) -> str:
        if self.raw:
            return ""
        return DOCUMENT_CLOSE

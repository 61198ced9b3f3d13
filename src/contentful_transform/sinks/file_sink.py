from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Any, AsyncIterable, Dict, Optional, TextIO

from contentful_transform.core.base_sink import BaseSink
from contentful_transform.core.contracts import Record
from contentful_transform.sinks.registry import register_sink
from contentful_transform.sinks.strategies.json_writer import JsonStreamWriter
from contentful_transform.sinks.types import FileSinkRuntimeConfig


@register_sink(system_type="file")
class FileSink(BaseSink):
    """
    Writes the record stream to a JSON file or stdout as records arrive.

    Nothing is held in memory beyond the record being serialized.
    """

    def __init__(self, config: FileSinkRuntimeConfig, *, stdout: Optional[TextIO] = None):
        super().__init__(config)
        self._stdout = stdout

    @property
    def target(self) -> str:
        return self.config.path

    async def write(self, records: AsyncIterable[Record]) -> Dict[str, Any]:
        cfg = self.config
        writer = JsonStreamWriter(raw=cfg.raw)
        to_stdout = cfg.path == "-"
        out: TextIO = (self._stdout or sys.stdout) if to_stdout else open(cfg.path, "w", encoding="utf-8")
        self.log_info(f"Writing records to {'stdout' if to_stdout else cfg.path} (raw={cfg.raw})")

        written_bytes = 0
        try:
            chunk = writer.open()
            out.write(chunk)
            written_bytes += len(chunk.encode("utf-8"))
            async for record in records:
                chunk = writer.item(record)
                out.write(chunk)
                written_bytes += len(chunk.encode("utf-8"))
            chunk = writer.close()
            out.write(chunk)
            written_bytes += len(chunk.encode("utf-8"))
        finally:
            if to_stdout:
                out.flush()
            else:
                out.close()

        audit = {
            "write_time_utc": datetime.now(timezone.utc).isoformat(),
            "target_location": cfg.path,
            "status": "success",
            "record_count": writer.count,
            "bytes": written_bytes,
        }
        self.log_info(f"File write completed: record_count={writer.count}, target={cfg.path}")
        return self.post_write(audit)

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, AsyncIterable, Callable, Dict, Optional

from contentful_transform.connectors.contentful.client import ContentfulClient
from contentful_transform.connectors.contentful.types import ApiResponse
from contentful_transform.core.base_sink import BaseSink
from contentful_transform.core.contracts import (
    Record,
    content_type_id,
    is_published,
    record_id,
    record_type,
    record_version,
)
from contentful_transform.core.exceptions import PublishError, TransportError
from contentful_transform.pipeline.stream import for_each_concurrent
from contentful_transform.sinks.registry import register_sink
from contentful_transform.sinks.types import SpaceSinkRuntimeConfig

_RESOURCES = {"Entry": "/entries", "Asset": "/assets"}

ErrorHandler = Callable[[PublishError], None]


@register_sink(system_type="space")
class SpacePublisher(BaseSink):
    """
    Upserts each record into a space through the management API.

    Writes run concurrently, bounded by the client's write limit (or
    `max_concurrency`). A record that fails is reported through `on_error`
    and counted; it never stops the other writes.

    With `publish=True` records that were published in the source are
    published after the upsert; `publish="force"` publishes every record.
    """

    def __init__(
        self,
        config: SpaceSinkRuntimeConfig,
        *,
        client: ContentfulClient,
        on_error: Optional[ErrorHandler] = None,
    ):
        super().__init__(config)
        self.client = client
        self.on_error = on_error
        self.attempted = 0
        self.succeeded = 0
        self.failed = 0
        self.published = 0

    @property
    def target(self) -> str:
        return self.client.connection.key

    async def write(self, records: AsyncIterable[Record]) -> Dict[str, Any]:
        concurrency = self.config.max_concurrency or self.client.settings.max_concurrent_writes
        self.log_info(f"Publishing records to space {self.target} (publish={self.config.publish})")

        await for_each_concurrent(records, self.publish_record, concurrency)

        audit = {
            "write_time_utc": datetime.now(timezone.utc).isoformat(),
            "target_location": self.target,
            "status": "success" if self.failed == 0 else "partial",
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "published": self.published,
        }
        self.log_info(
            f"Space write completed: attempted={self.attempted}, succeeded={self.succeeded}, "
            f"failed={self.failed}, published={self.published}"
        )
        return self.post_write(audit)

    async def publish_record(self, record: Record) -> bool:
        """Write one record. Returns False (after reporting) when the write failed."""
        self.attempted += 1
        try:
            published = await self._upsert(record)
        except PublishError as exc:
            self._report(exc)
            return False
        except TransportError as exc:
            self._report(PublishError(record_id(record), str(exc), status_code=exc.status_code, body=exc.body))
            return False

        self.succeeded += 1
        if published:
            self.published += 1
        return True

    def should_publish(self, record: Record) -> bool:
        mode = self.config.publish
        if mode == "force":
            return True
        return bool(mode) and is_published(record)

    async def _upsert(self, record: Record) -> bool:
        rid = record_id(record)
        rtype = record_type(record)
        resource = _RESOURCES.get(rtype or "")
        if resource is None:
            raise PublishError(rid, f"cannot write a record of type {rtype!r}")

        headers: Dict[str, str] = {}
        version = record_version(record)
        if version is not None:
            headers["x-contentful-version"] = str(version)
        if rtype == "Entry":
            headers["x-contentful-content-type"] = content_type_id(record) or ""

        body: Dict[str, Any] = {"fields": record.get("fields") or {}}
        if "metadata" in record:
            body["metadata"] = record["metadata"]

        resp = await self.client.put(f"{resource}/{rid}", json=body, headers=headers)
        if not resp.ok:
            raise PublishError(rid, "upserting", status_code=resp.status_code, body=resp.body)

        if not self.should_publish(record):
            return False

        new_version = self._version_from(resp, fallback=version)
        publish_headers = {"x-contentful-version": str(new_version)} if new_version is not None else {}
        resp = await self.client.put(f"{resource}/{rid}/published", headers=publish_headers)
        if not resp.ok:
            raise PublishError(rid, "publishing", status_code=resp.status_code, body=resp.body)
        return True

    @staticmethod
    def _version_from(resp: ApiResponse, *, fallback: Optional[int]) -> Optional[int]:
        try:
            data = resp.json()
        except TransportError:
            return fallback
        if isinstance(data, dict):
            version = (data.get("sys") or {}).get("version")
            if version is not None:
                return version
        return fallback

    def _report(self, exc: PublishError) -> None:
        self.failed += 1
        self.log_error(f"Failed to write {exc.record_id}", exc)
        if self.on_error is not None:
            self.on_error(exc)

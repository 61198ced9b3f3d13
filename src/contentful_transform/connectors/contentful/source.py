from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import parse_qsl

from contentful_transform.connectors.contentful.client import ContentfulClient
from contentful_transform.connectors.registry import register_connector
from contentful_transform.core.contracts import Record
from contentful_transform.core.exceptions import TransportError
from contentful_transform.core.logger import get_logger

log = get_logger(__name__)


@register_connector(system_type="space")
class SpaceSource:
    """Pulls records out of a space page by page.

    Pages are requested only as fast as the consumer pulls records, so a slow
    downstream stage pauses pagination. Order is the server's order within a
    page. The total reported by the first page bounds the sequence; no
    snapshot is taken, so a space edited mid-run may be observed inconsistently.
    """

    def __init__(
        self,
        client: ContentfulClient,
        *,
        content_type: Optional[str] = None,
        query: Optional[str] = None,
        page_size: int = 100,
    ):
        self.client = client
        self.content_type = content_type
        self.query = query
        self.page_size = page_size

    async def stream(
        self,
        content_type: Optional[str] = None,
        query: Optional[str] = None,
    ) -> AsyncIterator[Record]:
        content_type = content_type or self.content_type
        query = query or self.query

        params: Dict[str, Any] = {}
        if content_type:
            params["content_type"] = content_type
        if query:
            params.update(parse_qsl(query, keep_blank_values=True))

        resources: List[str] = ["/entries"]
        if not content_type:
            resources.append("/assets")

        for resource in resources:
            async for record in self._paginate(resource, params):
                yield record

    async def _paginate(self, resource: str, params: Dict[str, Any]) -> AsyncIterator[Record]:
        skip = 0
        total: Optional[int] = None
        while total is None or skip < total:
            page_params = dict(params)
            page_params.update({"skip": skip, "limit": self.page_size})

            resp = await self.client.get(resource, params=page_params)
            if not resp.ok:
                raise TransportError(
                    f"{resp.status_code} getting {resource} (skip={skip}):\n  {resp.body}",
                    status_code=resp.status_code,
                    body=resp.body,
                )

            page = resp.json() or {}
            items = page.get("items") or []
            if total is None:
                total = int(page.get("total", 0))
                log.info(f"Reading {total} records from {resource} in {self.client.connection.key}")

            for item in items:
                yield item

            if not items:
                break
            skip += len(items)

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from contentful_transform.connectors.contentful.client import ContentfulClient
from contentful_transform.core.contracts import ContentType
from contentful_transform.core.exceptions import ConfigurationError, TransportError
from contentful_transform.core.logger import get_logger

log = get_logger(__name__)


class ContentTypeCache:
    """Run-scoped content type lookup.

    Filled from content types found in a parsed document, or fetched on first
    reference through `client`. Concurrent lookups of one id share a single
    request. Content types never change during a run.
    """

    def __init__(self, client: Optional[ContentfulClient] = None):
        self.client = client
        self._types: Dict[str, ContentType] = {}
        self._pending: Dict[str, "asyncio.Task[Optional[ContentType]]"] = {}

    def __contains__(self, content_type_id: str) -> bool:
        return content_type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    def add(self, content_type: ContentType) -> None:
        self._types[content_type["sys"]["id"]] = content_type

    async def get(self, content_type_id: str) -> Optional[ContentType]:
        cached = self._types.get(content_type_id)
        if cached is not None or self.client is None:
            return cached

        task = self._pending.get(content_type_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch(content_type_id))
            self._pending[content_type_id] = task
        # shield: one cancelled caller must not cancel the fetch for the others
        return await asyncio.shield(task)

    async def _fetch(self, content_type_id: str) -> Optional[ContentType]:
        if self.client is None:
            raise ConfigurationError(f"Cannot fetch content type {content_type_id}: no client configured")
        try:
            resp = await self.client.get(f"/content_types/{content_type_id}")
            if resp.status_code == 404:
                log.warning(f"Content type {content_type_id} not found")
                return None
            if not resp.ok:
                raise TransportError(
                    f"{resp.status_code} getting content type {content_type_id}:\n  {resp.body}",
                    status_code=resp.status_code,
                    body=resp.body,
                )
            content_type = resp.json()
            self._types[content_type_id] = content_type
            return content_type
        finally:
            self._pending.pop(content_type_id, None)

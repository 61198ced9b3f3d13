from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

from contentful_transform.core.contracts import DEFAULT_ENVIRONMENT
from contentful_transform.core.exceptions import TransportError


HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]

MANAGEMENT_HOST = "https://api.contentful.com"
DELIVERY_HOST = "https://cdn.contentful.com"

MANAGEMENT_MEDIA_TYPE = "application/vnd.contentful.management.v1+json"
DELIVERY_MEDIA_TYPE = "application/vnd.contentful.delivery.v1+json"


@dataclass(frozen=True)
class SpaceConnection:
    space_id: str
    access_token: str = field(repr=False)
    environment_id: Optional[str] = None

    @property
    def environment(self) -> str:
        return self.environment_id or DEFAULT_ENVIRONMENT

    @property
    def key(self) -> str:
        return f"{self.space_id}/{self.environment_id}" if self.environment_id else self.space_id


@dataclass(frozen=True)
class ClientSettings:
    """Runtime counterpart of models.transport_config.TransportConfig."""

    management_host: str = MANAGEMENT_HOST
    delivery_host: str = DELIVERY_HOST
    timeout_seconds: float = 30.0

    max_concurrent_reads: Optional[int] = None
    max_concurrent_writes: int = 4

    max_retries: int = 5
    rate_limit_delay: float = 1.0
    max_retry_delay: float = 60.0

    key_wait_budget: float = 30.0
    key_poll_interval: float = 1.0


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    headers: Dict[str, str]
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        try:
            return json.loads(self.body) if self.body else None
        except ValueError as exc:
            raise TransportError(
                f"Malformed JSON response (status {self.status_code}): {self.body[:500]}",
                status_code=self.status_code,
                body=self.body,
            ) from exc

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, NonNegativeFloat, NonNegativeInt, PositiveFloat, PositiveInt


class TransportConfig(BaseModel):
    """HTTP, concurrency and retry settings for one space client.

    Defaults:
    - reads are unbounded, writes are limited to 4 in flight;
    - a 429 without a reset hint waits `rate_limit_delay` seconds, at most
      `max_retries` times, and a server hint is capped at `max_retry_delay`;
    - a freshly created delivery key is polled every `key_poll_interval`
      seconds for up to `key_wait_budget` seconds.
    """

    management_host: str = "https://api.contentful.com"
    delivery_host: str = "https://cdn.contentful.com"
    timeout_seconds: PositiveFloat = 30.0

    max_concurrent_reads: Optional[PositiveInt] = None
    max_concurrent_writes: PositiveInt = 4

    max_retries: NonNegativeInt = 5
    rate_limit_delay: NonNegativeFloat = 1.0
    max_retry_delay: PositiveFloat = 60.0

    key_wait_budget: NonNegativeFloat = 30.0
    key_poll_interval: NonNegativeFloat = 1.0

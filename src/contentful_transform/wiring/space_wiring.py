from __future__ import annotations

import asyncio
from typing import Dict, Iterator, Optional, Tuple

import httpx

from contentful_transform.connectors.contentful.client import ContentfulClient
from contentful_transform.connectors.contentful.types import ClientSettings, SpaceConnection
from contentful_transform.core.exceptions import ConfigurationError
from contentful_transform.core.logger import get_logger
from contentful_transform.core.secrets_provider import SecretsProvider
from contentful_transform.models.sink_config import SpaceSinkConfig
from contentful_transform.models.source_config import SpaceSourceConfig
from contentful_transform.models.transport_config import TransportConfig
from contentful_transform.sinks.types import SpaceSinkRuntimeConfig
from contentful_transform.wiring.sink_registry import BuiltSinkArgs, register_sink_wiring
from contentful_transform.wiring.source_registry import (
    BuiltConnectorArgs,
    WiringContext,
    register_source_wiring,
)

log = get_logger(__name__)


def build_client_settings(cfg: TransportConfig) -> ClientSettings:
    # This wiring module is the only layer allowed to read Pydantic config.
    return ClientSettings(
        management_host=cfg.management_host,
        delivery_host=cfg.delivery_host,
        timeout_seconds=float(cfg.timeout_seconds),
        max_concurrent_reads=cfg.max_concurrent_reads,
        max_concurrent_writes=cfg.max_concurrent_writes,
        max_retries=cfg.max_retries,
        rate_limit_delay=float(cfg.rate_limit_delay),
        max_retry_delay=float(cfg.max_retry_delay),
        key_wait_budget=float(cfg.key_wait_budget),
        key_poll_interval=float(cfg.key_poll_interval),
    )


def resolve_access_token(
    explicit: Optional[str],
    *,
    default: Optional[str] = None,
    secrets_provider: Optional[SecretsProvider] = None,
    space_key: str = "",
) -> str:
    token = explicit or default
    if token is None and secrets_provider is not None:
        token = secrets_provider.get_secret("access_token")
    if not token:
        raise ConfigurationError(
            f"No access token for space {space_key!r}: pass --access-token or set CONTENTFUL_ACCESS_TOKEN"
        )
    return token


class ClientPool:
    """One client per `space[/environment]` for the whole run.

    The source reader, validator lookups and publisher for the same space share
    a client, and so its rate limits and stats. `close()` runs cleanup on every
    client before closing any of them.
    """

    def __init__(self, *, http: Optional[httpx.AsyncClient] = None):
        self._http = http
        self._clients: Dict[str, ContentfulClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __iter__(self) -> Iterator[Tuple[str, ContentfulClient]]:
        return iter(list(self._clients.items()))

    def get(self, connection: SpaceConnection, settings: ClientSettings) -> ContentfulClient:
        """Return the client for `connection.key`, creating it on first use.

        Raises:
            ConfigurationError: the space is already bound to a different token
                or transport settings.
        """
        client = self._clients.get(connection.key)
        if client is None:
            client = ContentfulClient(connection, settings, http=self._http)
            self._clients[connection.key] = client
            log.info(f"Created client {client!r}")
            return client

        if client.access_token != connection.access_token:
            raise ConfigurationError(
                f"Space {connection.key!r} is configured with two different access tokens"
            )
        if client.settings != settings:
            raise ConfigurationError(
                f"Space {connection.key!r} is configured with two different transport settings"
            )
        return client

    def track(self, key: str, client: ContentfulClient) -> None:
        """Add a client created elsewhere (e.g. a derived read-only client) for stats and cleanup."""
        self._clients.setdefault(key, client)

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {key: client.stats.to_dict() for key, client in self._clients.items()}

    async def close(self) -> None:
        clients = list(self._clients.values())
        results = await asyncio.gather(*(c.cleanup() for c in clients), return_exceptions=True)
        for client, result in zip(clients, results):
            if isinstance(result, BaseException):
                log.error(f"Cleanup failed for {client!r}: {result}")
        for client in clients:
            await client.aclose()


def _client_for(
    context: WiringContext,
    *,
    space_id: str,
    environment_id: Optional[str],
    access_token: Optional[str],
    transport: TransportConfig,
) -> ContentfulClient:
    key = f"{space_id}/{environment_id}" if environment_id else space_id
    token = resolve_access_token(
        access_token,
        default=context.access_token,
        secrets_provider=context.secrets_provider,
        space_key=key,
    )
    connection = SpaceConnection(space_id=space_id, access_token=token, environment_id=environment_id)
    return context.pool.get(connection, build_client_settings(transport))


@register_source_wiring(system_type="space")
def build_space_connector_args(*, source: SpaceSourceConfig, context: WiringContext) -> BuiltConnectorArgs:
    client = _client_for(
        context,
        space_id=source.space_id,
        environment_id=source.environment_id,
        access_token=source.access_token,
        transport=source.transport,
    )
    return BuiltConnectorArgs(
        args=(client,),
        kwargs={
            "content_type": source.content_type,
            "query": source.query,
            "page_size": source.page_size,
        },
        client=client,
    )


def build_space_sink_runtime_config(cfg: SpaceSinkConfig) -> SpaceSinkRuntimeConfig:
    return SpaceSinkRuntimeConfig(
        system_type=cfg.system_type,
        space_key=cfg.key,
        publish=cfg.publish,
        max_concurrency=cfg.max_concurrency,
    )


@register_sink_wiring(system_type="space")
def build_space_sink_args(*, sink: SpaceSinkConfig, context: WiringContext) -> BuiltSinkArgs:
    client = _client_for(
        context,
        space_id=sink.space_id,
        environment_id=sink.environment_id,
        access_token=sink.access_token,
        transport=sink.transport,
    )
    runtime_cfg = build_space_sink_runtime_config(sink)
    return BuiltSinkArgs(args=(runtime_cfg,), kwargs={"client": client, "on_error": context.on_publish_error})

from __future__ import annotations

import asyncio
import uuid
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, TextIO, Union

import httpx

from contentful_transform.bootstrap import load_builtin_plugins
from contentful_transform.connectors.registry import ConnectorRegistry
from contentful_transform.core.contracts import (
    Record,
    RunResult,
    ValidationOutcome,
    is_processable,
    record_type,
    space_id,
)
from contentful_transform.core.events import build_default_bus, publish_event, set_global_bus, timed_stage
from contentful_transform.core.exceptions import PublishError, ValidationError
from contentful_transform.core.logger import configure_root_logger, get_logger, push_run_id, reset_run_id
from contentful_transform.core.secrets_provider import SecretsProvider
from contentful_transform.models.run_config import RunConfig
from contentful_transform.pipeline.aggregator import EntryAggregator
from contentful_transform.pipeline.content_types import ContentTypeCache
from contentful_transform.pipeline.filter import FilterStage
from contentful_transform.pipeline.stream import Broadcast, filter_stream, gather_or_cancel
from contentful_transform.pipeline.transform import TransformStage
from contentful_transform.pipeline.validator import Validator
from contentful_transform.providers.env_secrets_provider import EnvSecretsProvider
from contentful_transform.sinks.registry import SinkRegistry
from contentful_transform.wiring.sink_registry import SinkWiringRegistry
from contentful_transform.wiring.source_registry import BuiltConnectorArgs, SourceWiringRegistry, WiringContext
from contentful_transform.wiring.space_wiring import ClientPool

APP_HOST = "https://app.contentful.com"


def record_url(record: Record) -> str:
    resource = "assets" if record_type(record) == "Asset" else "entries"
    rid = (record.get("sys") or {}).get("id", "")
    return f"{APP_HOST}/spaces/{space_id(record)}/{resource}/{rid}"


def format_invalid(outcome: ValidationOutcome) -> str:
    message = str(ValidationError(outcome.record_id, outcome.errors))
    return f"{message}\n  {record_url(outcome.record)}"


class TransformOrchestrator:
    """
    Runs one source -> filter -> transform -> validate -> outputs pipeline.

    Example:
        >>> from contentful_transform.models.run_config import RunConfig
        >>> cfg = RunConfig.model_validate({"source": {"system_type": "file", "path": "export.json"}})
        >>> result = TransformOrchestrator().run(cfg)
        >>> result.ok
        True
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = str(run_id) if run_id is not None else str(uuid.uuid4())

    def run(
        self,
        cfg: Union[Dict[str, Any], RunConfig],
        secrets_provider: Optional[SecretsProvider] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
    ) -> RunResult:
        """
        Execute the run described by `cfg` on a fresh event loop.

        Args:
            cfg: A RunConfig, or a dict validated into one.
            secrets_provider: Source of the fallback access token. Defaults to
                the environment (CONTENTFUL_ACCESS_TOKEN).
            http: Optional shared httpx.AsyncClient (tests inject a MockTransport).

        Returns:
            RunResult with per-record error messages, request stats and sink audits.

        Raises:
            ContentfulTransformException: on a fatal failure, after any
                temporary delivery keys have been deleted.
        """
        if isinstance(cfg, dict):
            cfg = RunConfig.model_validate(cfg)

        configure_root_logger("INFO" if cfg.verbose else None)
        log = get_logger(__name__)

        token = push_run_id(self.run_id)
        bus = build_default_bus(run_id=self.run_id, quiet=cfg.quiet)
        if bus is not None:
            bus.start()
            set_global_bus(bus)
        try:
            log.info("Starting transform run")
            return asyncio.run(
                run_transform(
                    self.run_id,
                    cfg,
                    http=http,
                    secrets_provider=secrets_provider,
                    stdin=stdin,
                    stdout=stdout,
                )
            )
        finally:
            reset_run_id(token)
            if bus is not None:
                bus.shutdown()
            set_global_bus(None)


async def _counted(source: AsyncIterable[Record], result: RunResult) -> AsyncIterator[Record]:
    async for record in source:
        result.records_read += 1
        yield record


async def run_transform(
    run_id: str,
    cfg: RunConfig,
    *,
    http: Optional[httpx.AsyncClient] = None,
    secrets_provider: Optional[SecretsProvider] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> RunResult:
    log = get_logger(__name__)
    load_builtin_plugins()

    result = RunResult(run_id=run_id)
    errors: List[str] = result.error_messages

    def on_invalid(outcome: ValidationOutcome) -> None:
        message = format_invalid(outcome)
        log.warning(message)
        errors.append(message)

    def on_publish_error(exc: PublishError) -> None:
        errors.append(str(exc))

    pool = ClientPool(http=http)
    content_types = ContentTypeCache()
    context = WiringContext(
        pool=pool,
        content_types=content_types,
        secrets_provider=secrets_provider or EnvSecretsProvider(),
        access_token=cfg.access_token,
        stdin=stdin,
        stdout=stdout,
        on_publish_error=on_publish_error,
    )

    try:
        source = cfg.source
        log.info(f"Initializing source: system_type={source.system_type}")
        with timed_stage("source.init", details={"system_type": source.system_type}):
            connector_cls = ConnectorRegistry.get(source.system_type)
            built = SourceWiringRegistry.get(source.system_type)(source=source, context=context)
            read_client = built.client
            if built.client is not None:
                # Content types always come from the original client; drafts are invisible to the CDN
                content_types.client = built.client
                if not cfg.draft:
                    read_client = await built.client.derive_read_only_client()
                    if read_client is not built.client:
                        pool.track(f"{built.client.connection.key} (delivery)", read_client)
                    built = BuiltConnectorArgs(args=(read_client,) + built.args[1:], kwargs=built.kwargs)
            connector = connector_cls(*built.args, **built.kwargs)

        sinks = []
        for output in cfg.outputs:
            sink_cls = SinkRegistry.get(output.system_type)
            built_sink = SinkWiringRegistry.get(output.system_type)(sink=output, context=context)
            sinks.append(sink_cls(*built_sink.args, **built_sink.kwargs))
        log.info(f"Writing to {len(sinks)} output(s): {', '.join(s.target for s in sinks)}")

        records: AsyncIterable[Record] = filter_stream(
            _counted(connector.stream(), result),
            lambda obj: is_processable(obj, draft=cfg.draft),
        )
        aggregator = EntryAggregator()
        records = aggregator.stream(records)
        if cfg.filter:
            records = FilterStage(cfg.filter, locale=cfg.locale).stream(records)
        if cfg.transform:
            records = TransformStage(
                cfg.transform,
                content_types.get,
                locale=cfg.locale,
                verbose=cfg.verbose,
            ).stream(records)
        if cfg.validation.enabled:
            validator = Validator(
                content_type_getter=content_types.get,
                aggregator=aggregator,
                client=read_client,
                max_concurrent_lookups=cfg.validation.max_concurrent_lookups,
                lookup_timeout=cfg.validation.lookup_timeout_seconds,
                # Without live lookups links resolve only as the stream drains, so read ahead freely
                max_concurrent_entries=cfg.validation.max_concurrent_lookups if read_client is not None else None,
            )
            records = validator.stream(records, on_invalid=on_invalid)

        broadcast = Broadcast(records, len(sinks), buffer_size=cfg.buffer_size)
        with timed_stage("pipeline.run", details={"outputs": [s.target for s in sinks]}) as stage:
            audits = await gather_or_cancel(
                broadcast.pump(),
                *(sink.write(broadcast.channel(i)) for i, sink in enumerate(sinks)),
            )
            result.sink_audits = list(audits[1:])
            stage.counts = {"records_read": result.records_read, "errors": len(errors)}

        for audit in result.sink_audits:
            publish_event(stage="sink.write", status="completed", details=audit)
    finally:
        await pool.close()

    result.stats = pool.stats()
    if errors:
        result.status = "completed_with_errors"
    if cfg.verbose:
        for key, stats in result.stats.items():
            log.info(
                f"{key}: {stats['requests']} requests, {stats['rate_limits']} rate limited, "
                f"max queue size {stats['max_queue_size']}"
            )
    log.info(f"Run finished: status={result.status}, records_read={result.records_read}, errors={len(errors)}")
    return result

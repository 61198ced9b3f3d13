from __future__ import annotations

from contentful_transform.models.sink_config import FileSinkConfig
from contentful_transform.models.source_config import FileSourceConfig
from contentful_transform.sinks.types import FileSinkRuntimeConfig
from contentful_transform.wiring.sink_registry import BuiltSinkArgs, register_sink_wiring
from contentful_transform.wiring.source_registry import (
    BuiltConnectorArgs,
    WiringContext,
    register_source_wiring,
)


@register_source_wiring(system_type="file")
def build_file_connector_args(*, source: FileSourceConfig, context: WiringContext) -> BuiltConnectorArgs:
    return BuiltConnectorArgs(
        args=(source.path,),
        kwargs={
            "raw": source.raw,
            "content_types": context.content_types,
            "stdin": context.stdin,
        },
    )


@register_sink_wiring(system_type="file")
def build_file_sink_args(*, sink: FileSinkConfig, context: WiringContext) -> BuiltSinkArgs:
    runtime_cfg = FileSinkRuntimeConfig(
        system_type=sink.system_type,
        path=sink.path,
        raw=sink.raw,
    )
    return BuiltSinkArgs(args=(runtime_cfg,), kwargs={"stdout": context.stdout})

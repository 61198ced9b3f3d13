from __future__ import annotations

import importlib
import sys
from typing import Iterable


BUILTIN_PLUGIN_MODULES: tuple[str, ...] = (
    # Sources
    "contentful_transform.connectors.file_source",
    "contentful_transform.connectors.contentful.source",

    # Sinks
    "contentful_transform.sinks.file_sink",
    "contentful_transform.sinks.space_sink",

    # Wiring
    "contentful_transform.wiring.file_wiring",
    "contentful_transform.wiring.space_wiring",
)


_LOADED = False


def load_builtin_plugins(*, reload: bool = False, modules: Iterable[str] = BUILTIN_PLUGIN_MODULES) -> None:
    """Import built-in connector, sink and wiring modules so decorators register them.

    In production, call with reload=False (default) so imports are cheap.
    In tests, call with reload=True to clear the registries and re-run decorators.
    """

    global _LOADED

    if _LOADED and not reload:
        return

    if reload:
        from contentful_transform.connectors.registry import ConnectorRegistry
        from contentful_transform.sinks.registry import SinkRegistry
        from contentful_transform.wiring.sink_registry import SinkWiringRegistry
        from contentful_transform.wiring.source_registry import SourceWiringRegistry

        ConnectorRegistry.clear()
        SourceWiringRegistry.clear()
        SinkRegistry.clear()
        SinkWiringRegistry.clear()

    for module_name in modules:
        if reload:
            sys.modules.pop(module_name, None)
        importlib.import_module(module_name)

    _LOADED = True

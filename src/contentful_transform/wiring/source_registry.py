from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, Optional, TextIO, Tuple

from contentful_transform.core.secrets_provider import SecretsProvider

if TYPE_CHECKING:
    from contentful_transform.pipeline.content_types import ContentTypeCache
    from contentful_transform.wiring.space_wiring import ClientPool


class SourceWiringRegistryError(RuntimeError):
    pass


@dataclass
class WiringContext:
    """Run-scoped resources shared by every source and sink builder."""

    pool: "ClientPool"
    content_types: "ContentTypeCache"
    secrets_provider: Optional[SecretsProvider] = None
    # Token for space sources/outputs that do not carry their own
    access_token: Optional[str] = None
    stdin: Optional[TextIO] = None
    stdout: Optional[TextIO] = None
    on_publish_error: Optional[Callable[..., None]] = None


@dataclass(frozen=True)
class BuiltConnectorArgs:
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any]
    # Space client backing the connector, if any
    client: Optional[Any] = None


BuilderFn = Callable[..., BuiltConnectorArgs]


class SourceWiringRegistry:
    _registry: ClassVar[Dict[str, BuilderFn]] = {}

    @classmethod
    def register(
        cls,
        *,
        system_type: str,
        builder: BuilderFn,
        overwrite: bool = False,
    ) -> None:
        if not overwrite and system_type in cls._registry:
            raise SourceWiringRegistryError(f"Wiring already registered for system_type={system_type!r}")
        cls._registry[system_type] = builder

    @classmethod
    def get(cls, system_type: str) -> BuilderFn:
        try:
            return cls._registry[system_type]
        except KeyError as exc:
            raise SourceWiringRegistryError(f"No wiring registered for system_type={system_type!r}") from exc

    @classmethod
    def clear(cls) -> None:
        cls._registry.clear()


def register_source_wiring(
    *,
    system_type: str,
    overwrite: bool = False,
) -> Callable[[BuilderFn], BuilderFn]:
    def decorator(builder: BuilderFn) -> BuilderFn:
        SourceWiringRegistry.register(
            system_type=system_type,
            builder=builder,
            overwrite=overwrite,
        )
        return builder

    return decorator

from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, Optional, Type


class ConnectorRegistryError(RuntimeError):
    pass


class ConnectorRegistry:
    """Maps a source `system_type` ("file", "space") to its connector class."""

    _registry: ClassVar[Dict[str, Type[Any]]] = {}

    @classmethod
    def register(
        cls,
        *,
        system_type: str,
        connector_class: Type[Any],
        overwrite: bool = False,
    ) -> None:
        if not overwrite and system_type in cls._registry:
            existing = cls._registry[system_type]
            raise ConnectorRegistryError(
                f"Connector already registered for system_type={system_type!r}: {existing}"
            )
        cls._registry[system_type] = connector_class

    @classmethod
    def get(cls, system_type: str) -> Type[Any]:
        try:
            return cls._registry[system_type]
        except KeyError as exc:
            raise ConnectorRegistryError(f"No connector registered for system_type={system_type!r}") from exc

    @classmethod
    def try_get(cls, system_type: str) -> Optional[Type[Any]]:
        return cls._registry.get(system_type)

    @classmethod
    def clear(cls) -> None:
        cls._registry.clear()


def register_connector(
    *,
    system_type: str,
    overwrite: bool = False,
) -> Callable[[Type[Any]], Type[Any]]:
    def decorator(connector_class: Type[Any]) -> Type[Any]:
        ConnectorRegistry.register(
            system_type=system_type,
            connector_class=connector_class,
            overwrite=overwrite,
        )
        return connector_class

    return decorator

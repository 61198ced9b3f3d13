import logging
import os
import sys
import contextvars
from typing import Optional

# Context variable to carry the current run id across the call chain (and into asyncio tasks)
_RUN_ID: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")

_PACKAGE_LOGGER = "contentful_transform"


class _RunIdFilter(logging.Filter):
    """Logging filter that injects the run_id from contextvars into the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.run_id = _RUN_ID.get()
        return True


def _build_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | run=%(run_id)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _resolve_level(level: Optional[str]) -> int:
    name = level or os.getenv("CONTENTFUL_TRANSFORM_LOG_LEVEL") or "WARNING"
    return getattr(logging, name.upper(), logging.WARNING)


def configure_root_logger(level: Optional[str] = None) -> None:
    """
    Configure the root handler and the contentful_transform logger.

    Logs go to stderr: stdout is reserved for JSON output when writing to '-'.
    Root stays at WARNING to keep httpx/httpcore noise out; only the
    contentful_transform namespace follows the requested level.

    Safe to call multiple times; it will not duplicate handlers (idempotent).
    """
    root = logging.getLogger()
    package_logger = logging.getLogger(_PACKAGE_LOGGER)

    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and any(isinstance(f, _RunIdFilter) for f in h.filters):
            if level is not None:
                package_logger.setLevel(_resolve_level(level))
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_build_formatter())
    handler.addFilter(_RunIdFilter())
    handler.setLevel(logging.DEBUG)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    package_logger.setLevel(_resolve_level(level))


def get_logger(name: str = _PACKAGE_LOGGER) -> logging.Logger:
    """Get a module logger; handlers are configured once on the root."""
    configure_root_logger()
    if not name.startswith(_PACKAGE_LOGGER):
        name = f"{_PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def push_run_id(run_id: Optional[str]) -> Optional[contextvars.Token]:
    """Set the current run id in context and return a token for later reset."""
    if not run_id:
        return None
    return _RUN_ID.set(run_id)


def reset_run_id(token: Optional[contextvars.Token]) -> None:
    """Reset the run id context using the provided token (if any)."""
    if token is None:
        return
    try:
        _RUN_ID.reset(token)
    except ValueError:
        # Token created in a different context (e.g. inside asyncio.run)
        pass

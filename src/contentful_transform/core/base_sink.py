from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterable, Dict, Optional

from contentful_transform.core.contracts import Record
from contentful_transform.core.logger import get_logger


class BaseSink(ABC):
    def __init__(self, config: Any):
        self.config = config
        self.log = get_logger(self.__class__.__name__)

    # --- Required method ---
    @abstractmethod
    async def write(self, records: AsyncIterable[Record]) -> Dict[str, Any]:
        """Consume the stream to its end and return an audit dict."""
        raise NotImplementedError

    @property
    def target(self) -> str:
        return "-"

    # --- Optional lifecycle hooks ---
    def post_write(self, output: Dict[str, Any]) -> Dict[str, Any]:
        return output

    # --- Logging helpers ---
    def log_info(self, msg: str) -> None:
        self.log.info(msg)

    def log_warn(self, msg: str) -> None:
        self.log.warning(msg)

    def log_error(self, msg: str, exc: Optional[Exception] = None) -> None:
        if exc:
            self.log.error(f"{msg}: {exc}")
        else:
            self.log.error(msg)

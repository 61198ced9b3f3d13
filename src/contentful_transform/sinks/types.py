from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union


@dataclass
class FileSinkRuntimeConfig:
    """Where and how records are written as JSON.

    `path="-"` writes stdout. Document mode writes `{"entries": [...]}`;
    raw mode writes one JSON value per line.
    """

    system_type: Literal["file"] = "file"
    path: str = "-"
    raw: bool = False


@dataclass
class SpaceSinkRuntimeConfig:
    system_type: Literal["space"] = "space"
    space_key: str = ""
    publish: Union[bool, Literal["force"]] = False
    max_concurrency: Optional[int] = None

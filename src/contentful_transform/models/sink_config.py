from __future__ import annotations

import os
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, PositiveInt

from contentful_transform.models.transport_config import TransportConfig


class FileSinkConfig(BaseModel):
    system_type: Literal["file"] = "file"

    # "-" writes stdout
    path: str = "-"
    # raw: newline-delimited records instead of an {"entries": [...]} document
    raw: bool = False


class SpaceSinkConfig(BaseModel):
    system_type: Literal["space"] = "space"

    space_id: str
    environment_id: Optional[str] = None
    access_token: Optional[str] = None

    # True publishes records that were published in the source; "force" publishes everything
    publish: Union[bool, Literal["force"]] = False
    max_concurrency: Optional[PositiveInt] = None

    transport: TransportConfig = Field(default_factory=TransportConfig)

    @property
    def key(self) -> str:
        return f"{self.space_id}/{self.environment_id}" if self.environment_id else self.space_id


SinkConfig = Annotated[
    Union[FileSinkConfig, SpaceSinkConfig],
    Field(discriminator="system_type"),
]


def sink_config_from_target(target: str, **extra: Any) -> Dict[str, Any]:
    """Interpret a command-line output: "-" is stdout, a path with an extension is a file,
    anything else is `space[/environment]`."""
    if target == "-" or os.path.splitext(target)[1] != "":
        cfg: Dict[str, Any] = {"system_type": "file", "path": target}
        if "raw" in extra:
            cfg["raw"] = extra["raw"]
        return cfg

    space, _, environment = target.partition("/")
    cfg = {"system_type": "space", "space_id": space, "environment_id": environment or None}
    cfg.update({k: v for k, v in extra.items() if k != "raw" and v is not None})
    return cfg

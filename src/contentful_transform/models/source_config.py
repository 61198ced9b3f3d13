from __future__ import annotations

import os
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, PositiveInt, model_validator

from contentful_transform.models.transport_config import TransportConfig


class FileSourceConfig(BaseModel):
    system_type: Literal["file"] = "file"

    # "-" reads stdin
    path: str = "-"
    # raw: top-level JSON values are the records; otherwise every nested object is inspected
    raw: bool = False


class SpaceSourceConfig(BaseModel):
    system_type: Literal["space"] = "space"

    space_id: str
    environment_id: Optional[str] = None
    access_token: Optional[str] = None

    content_type: Optional[str] = None
    query: Optional[str] = None
    page_size: PositiveInt = Field(default=100, le=1000)

    transport: TransportConfig = Field(default_factory=TransportConfig)

    @model_validator(mode="after")
    def _validate_query(self) -> "SpaceSourceConfig":
        if self.query and not self.content_type:
            raise ValueError("query requires content_type")
        return self

    @property
    def key(self) -> str:
        return f"{self.space_id}/{self.environment_id}" if self.environment_id else self.space_id


SourceConfig = Annotated[
    Union[FileSourceConfig, SpaceSourceConfig],
    Field(discriminator="system_type"),
]


def source_config_from_target(target: str, **extra: Any) -> Dict[str, Any]:
    """Interpret a command-line source: "-" or an existing file, otherwise `space[/environment]`."""
    if target == "-" or os.path.isfile(target):
        cfg: Dict[str, Any] = {"system_type": "file", "path": target}
        if "raw" in extra:
            cfg["raw"] = extra["raw"]
        return cfg

    space, _, environment = target.partition("/")
    cfg = {"system_type": "space", "space_id": space, "environment_id": environment or None}
    cfg.update({k: v for k, v in extra.items() if k != "raw" and v is not None})
    return cfg

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt, model_validator

from contentful_transform.models.sink_config import FileSinkConfig, SinkConfig
from contentful_transform.models.source_config import SourceConfig


class ValidationConfig(BaseModel):
    """How entries are checked against their content types."""

    enabled: bool = False
    # Live lookups through the source client; ignored for file sources
    max_concurrent_lookups: PositiveInt = 4
    lookup_timeout_seconds: PositiveFloat = 10.0


class RunConfig(BaseModel):
    source: SourceConfig
    outputs: List[SinkConfig] = Field(default_factory=lambda: [FileSinkConfig()])

    # Applied to any space source/output that does not carry its own token
    access_token: Optional[str] = None

    filter: Optional[str] = None
    transform: Optional[str] = None
    locale: str = "en-US"

    validation: ValidationConfig = Field(default_factory=ValidationConfig)

    # Include unpublished records and read through the management API
    draft: bool = False
    verbose: bool = False
    quiet: bool = False

    # Records buffered per output between the pipeline and each sink
    buffer_size: PositiveInt = 16

    @model_validator(mode="after")
    def _validate_outputs(self) -> "RunConfig":
        if not self.outputs:
            raise ValueError("at least one output is required")
        return self

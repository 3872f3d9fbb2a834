"""Command API Schemas - request/response shapes for the command and history routes.

Invariants:
    - Command input is an opaque object here; each command validates its own input
      through its input_model inside the pipeline, so failures are audited
"""

from typing import Any

from pydantic import BaseModel, Field


class CommandRequestMetadata(BaseModel):
    actor_id: str | None = Field(None, max_length=64)
    correlation_id: str | None = Field(None, max_length=64)


class CommandRequest(BaseModel):
    input: dict[str, Any] = Field(default_factory=dict)
    metadata: CommandRequestMetadata = Field(default_factory=CommandRequestMetadata)


class HistoryResponse(BaseModel):
    entries: list[dict[str, Any]]
    stats: dict[str, int]


class CommandTypesResponse(BaseModel):
    command_types: list[str]

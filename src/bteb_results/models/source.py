"""Source descriptor models."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SourceKind(str, Enum):
    """Backend protocols a descriptor can name."""

    POSTGREST = "postgrest"  # Supabase / PostgREST REST API
    SNAPSHOT = "snapshot"  # Local JSON/YAML table export


class SourceDescriptor(BaseModel):
    """One configured backend record store."""

    model_config = {"populate_by_name": True}

    id: str = Field(min_length=1, description="Registry key, unique per process")
    kind: str = Field(default=SourceKind.POSTGREST.value, description="Backend protocol")
    endpoint: str = Field(default="", alias="url", description="Base URL or snapshot path")
    credential: str | None = Field(default=None, alias="key", repr=False)
    description: str = ""
    active: bool = True
    timeout: float | None = Field(
        default=None, gt=0, description="Per-source timeout override in seconds"
    )

    def effective_timeout(self, default: float) -> float:
        return self.timeout if self.timeout is not None else default

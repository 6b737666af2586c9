"""Error taxonomy for source resolution.

Per-source failures (``SourceUnavailable``, ``SourceTimeout``) are converted to
misses by the dispatcher, enrichment and fallback layers. ``UnknownSource`` and
``InvalidQuery`` are the only errors that reach callers.
"""
from __future__ import annotations

from dataclasses import dataclass


class ResolverError(Exception):
    """Base class for resolver errors."""


@dataclass
class UnknownSource(ResolverError):
    """Raised when a source id is not configured in the registry."""

    source_id: str

    def __str__(self) -> str:
        return f"unknown source: {self.source_id}"


@dataclass
class SourceUnavailable(ResolverError):
    """A single source could not be reached or its client could not be built.

    Covers bad credentials, malformed endpoints, transport failures and
    non-success HTTP statuses.
    """

    source_id: str
    reason: str

    def __str__(self) -> str:
        return f"{self.source_id}: {self.reason}"


@dataclass
class SourceTimeout(ResolverError):
    """The transport reported a timeout for one call."""

    source_id: str
    timeout_seconds: float | None = None

    def __str__(self) -> str:
        if self.timeout_seconds is None:
            return f"{self.source_id}: timeout"
        return f"{self.source_id}: timeout after {self.timeout_seconds:.2f}s"


class InvalidQuery(ResolverError, ValueError):
    """Inbound lookup key is missing fields or malformed."""

"""Pydantic data models."""

from .query import QueryKey
from .records import (
    CumulativeRecord,
    FallbackPayload,
    FallbackResultRow,
    GradeRecord,
    InstituteRecord,
    PrimaryRecord,
)
from .result import (
    WEB_API_SOURCE,
    CanonicalResult,
    CgpaEntry,
    InstituteData,
    NotFoundResult,
    ResolutionOutcome,
    ResultEntry,
)
from .source import SourceDescriptor, SourceKind

__all__ = [
    "QueryKey",
    "PrimaryRecord",
    "InstituteRecord",
    "GradeRecord",
    "CumulativeRecord",
    "FallbackPayload",
    "FallbackResultRow",
    "CanonicalResult",
    "InstituteData",
    "ResultEntry",
    "CgpaEntry",
    "NotFoundResult",
    "ResolutionOutcome",
    "WEB_API_SOURCE",
    "SourceDescriptor",
    "SourceKind",
]

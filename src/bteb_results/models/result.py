"""Canonical output shapes.

``CanonicalResult`` is the only record shape callers ever see; it serialises
with the camelCase field names the result front-end consumes.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# Provenance marker for results answered by the external web service
WEB_API_SOURCE = "web_api"

DEFAULT_PUBLISHED_AT = "2025-01-01T00:00:00Z"
REFERENCE_MARKER = "ref"
UNKNOWN = "Unknown"
UNKNOWN_INSTITUTE_CODE = "00000"
DEFAULT_CGPA = "0.00"
FINAL_SEMESTER = "Final"

NOT_FOUND_MESSAGE = "Student not found in database or web API"


class InstituteData(BaseModel):
    code: str = UNKNOWN_INSTITUTE_CODE
    name: str = UNKNOWN
    district: str = UNKNOWN


class GradeResult(BaseModel):
    gpa: str = REFERENCE_MARKER
    ref_subjects: list[Any] = Field(default_factory=list)


class ResultEntry(BaseModel):
    """One semester of results."""

    model_config = {"populate_by_name": True}

    published_at: str = Field(default=DEFAULT_PUBLISHED_AT, alias="publishedAt")
    semester: str = "1"
    passed: bool = False
    gpa: str = REFERENCE_MARKER
    result: GradeResult = Field(default_factory=GradeResult)


class CgpaEntry(BaseModel):
    model_config = {"populate_by_name": True}

    semester: str = FINAL_SEMESTER
    cgpa: str = DEFAULT_CGPA
    published_at: str = Field(default=DEFAULT_PUBLISHED_AT, alias="publishedAt")


class CanonicalResult(BaseModel):
    """A resolved examination record, whichever source answered."""

    model_config = {"populate_by_name": True}

    success: bool = True
    time: str | None = None
    roll: str
    regulation: str
    exam: str
    source: str = Field(description="Source id that answered, or 'web_api'")
    institute_data: InstituteData = Field(default_factory=InstituteData, alias="instituteData")
    result_data: list[ResultEntry] = Field(default_factory=list, alias="resultData")
    cgpa_data: list[CgpaEntry] = Field(default_factory=list, alias="cgpaData")

    def to_payload(self) -> dict[str, Any]:
        """Serialise with the public camelCase field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class NotFoundResult(BaseModel):
    """Terminal outcome after every source and the fallback were exhausted."""

    success: bool = False
    error: str = NOT_FOUND_MESSAGE
    roll: str
    regulation: str
    exam: str
    attempted: list[str] = Field(
        default_factory=list, description="Source ids tried, followed by 'web_api'"
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


ResolutionOutcome = CanonicalResult | NotFoundResult

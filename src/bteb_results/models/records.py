"""Raw record shapes returned by sources and by the external fallback.

These are the inputs of the normalizer and never leave it: database rows
(``shape="database"``) and fallback rows (``shape="web"``) form a tagged union.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator


class InstituteRecord(BaseModel):
    """Institute row, embedded in a student row or fetched on its own."""

    model_config = {"coerce_numbers_to_str": True, "extra": "ignore", "populate_by_name": True}

    code: str | None = Field(default=None, alias="institute_code")
    name: str | None = None
    district: str | None = None


class PrimaryRecord(BaseModel):
    """One student row matched on program, regulation and roll."""

    model_config = {"coerce_numbers_to_str": True, "extra": "ignore", "populate_by_name": True}

    roll_number: str
    program_name: str
    regulation_year: str
    institute_code: str | None = None
    created_at: str | None = None
    institute: InstituteRecord | None = Field(default=None, alias="institutes")

    @field_validator("institute", mode="before")
    @classmethod
    def _unwrap_embedded(cls, value: Any) -> Any:
        # PostgREST renders an embedded join as an object or a one-item list
        if isinstance(value, list):
            return value[0] if value else None
        return value


class GradeRecord(BaseModel):
    """Per-semester GPA row as stored by a source."""

    model_config = {"extra": "ignore"}

    shape: Literal["database"] = "database"
    semester: int | str | None = None
    gpa: float | str | None = None
    is_reference: bool | None = False
    ref_subjects: Any = None
    created_at: str | None = None


class CumulativeRecord(BaseModel):
    """Per-semester (or final) CGPA row as stored by a source."""

    model_config = {"extra": "ignore"}

    semester: int | str | None = None
    cgpa: float | str | None = None
    created_at: str | None = None


PASSED_WORDS = {"true", "yes", "pass", "passed", "1"}
FAILED_WORDS = {"false", "no", "fail", "failed", "ref", "referred", "0"}


def _scalar_or_none(value: Any) -> Any:
    """Keep strings and numbers; anything else from the external payload is dropped."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return value


def _passed_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in PASSED_WORDS:
            return True
        if word in FAILED_WORDS:
            return False
    return None


class FallbackResultRow(BaseModel):
    """One semester entry in the external service payload.

    ``result`` is either a bare grade value or an object carrying ``gpa`` and
    ``ref_subjects``. Unexpected field types degrade to ``None`` instead of
    rejecting the row.
    """

    model_config = {"coerce_numbers_to_str": True, "extra": "ignore", "populate_by_name": True}

    shape: Literal["web"] = "web"
    published_at: str | None = Field(default=None, alias="publishedAt")
    semester: int | str | None = None
    passed: bool | None = None
    result: Any = None

    @field_validator("published_at", "semester", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Any:
        return _scalar_or_none(value)

    @field_validator("passed", mode="before")
    @classmethod
    def _lenient_passed(cls, value: Any) -> bool | None:
        return _passed_flag(value)


class FallbackInstitute(BaseModel):
    model_config = {"coerce_numbers_to_str": True, "extra": "ignore"}

    code: str | None = None
    name: str | None = None
    district: str | None = None

    @field_validator("code", "name", "district", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Any:
        return _scalar_or_none(value)


class FallbackCgpaRow(BaseModel):
    model_config = {"coerce_numbers_to_str": True, "extra": "ignore", "populate_by_name": True}

    semester: int | str | None = None
    cgpa: float | str | None = None
    published_at: str | None = Field(default=None, alias="publishedAt")

    @field_validator("semester", "cgpa", "published_at", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Any:
        return _scalar_or_none(value)


class FallbackPayload(BaseModel):
    """Body returned by the external result service."""

    model_config = {"coerce_numbers_to_str": True, "extra": "ignore", "populate_by_name": True}

    time: str | None = None
    roll: str | None = None
    regulation: str | None = None
    exam: str | None = None
    institute_data: FallbackInstitute | None = Field(default=None, alias="instituteData")
    result_data: list[FallbackResultRow] = Field(default_factory=list, alias="resultData")
    cgpa_data: list[FallbackCgpaRow] = Field(default_factory=list, alias="cgpaData")

    @field_validator("time", "roll", "regulation", "exam", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Any:
        return _scalar_or_none(value)

    @field_validator("result_data", "cgpa_data", mode="before")
    @classmethod
    def _rows_only(cls, value: Any) -> Any:
        # Missing lists are empty; non-object entries are skipped
        if not isinstance(value, list):
            return []
        return [row for row in value if isinstance(row, dict)]

    @field_validator("institute_data", mode="before")
    @classmethod
    def _drop_non_object(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    def is_empty(self) -> bool:
        return not (self.roll or self.result_data or self.cgpa_data or self.institute_data)


RawGradeRow = Annotated[Union[GradeRecord, FallbackResultRow], Field(discriminator="shape")]

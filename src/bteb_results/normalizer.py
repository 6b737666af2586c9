"""Map source rows and fallback payloads onto the canonical result shape.

Default policy, applied to every origin:

- institute code ``"00000"``, name and district ``"Unknown"``
- missing grade -> ``"ref"``, and a ``"ref"`` grade is never a pass
- missing timestamp -> ``2025-01-01T00:00:00Z``
- missing CGPA -> ``"0.00"``; missing CGPA semester -> ``"Final"``
- missing GPA semester -> ``"1"``
- ``ref_subjects`` that is not a list -> ``[]``

Nothing here raises on degenerate input.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import TypeAdapter

from .models.query import QueryKey
from .models.records import (
    CumulativeRecord,
    FallbackCgpaRow,
    FallbackInstitute,
    FallbackPayload,
    InstituteRecord,
    PrimaryRecord,
    RawGradeRow,
)
from .models.result import (
    DEFAULT_CGPA,
    DEFAULT_PUBLISHED_AT,
    FINAL_SEMESTER,
    REFERENCE_MARKER,
    UNKNOWN,
    UNKNOWN_INSTITUTE_CODE,
    WEB_API_SOURCE,
    CanonicalResult,
    CgpaEntry,
    GradeResult,
    InstituteData,
    ResultEntry,
)
from .sources.base import CGPA_LIMIT

_GRADE_ROWS = TypeAdapter(list[RawGradeRow])


def stringify(value: Any) -> str:
    """Render a number or label the way the JSON API renders it (4.0 -> '4')."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _grade(value: Any) -> str:
    if _blank(value):
        return REFERENCE_MARKER
    text = stringify(value).strip()
    return REFERENCE_MARKER if text.lower() == REFERENCE_MARKER else text


def _subjects(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _timestamp(value: Any) -> str:
    return DEFAULT_PUBLISHED_AT if _blank(value) else str(value)


def _text(value: Any, default: str) -> str:
    return default if _blank(value) else str(value)


def normalize_institute(
    institute: InstituteRecord | FallbackInstitute | InstituteData | None,
    fallback_code: str | None = None,
) -> InstituteData:
    """Institute block with code/name/district defaults."""
    code = getattr(institute, "code", None) if institute is not None else None
    if _blank(code):
        code = fallback_code
    return InstituteData(
        code=_text(code, UNKNOWN_INSTITUTE_CODE),
        name=_text(getattr(institute, "name", None), UNKNOWN),
        district=_text(getattr(institute, "district", None), UNKNOWN),
    )


def normalize_grade(row: RawGradeRow | ResultEntry) -> ResultEntry:
    """One semester entry from any of the grade shapes, dispatched on ``shape``."""
    shape = getattr(row, "shape", None)
    if shape == "database":
        gpa = _grade(row.gpa)
        passed = not row.is_reference
        subjects = _subjects(row.ref_subjects)
        semester, published_at = row.semester, row.created_at
    elif shape == "web":
        # result is either the bare grade or {"gpa": ..., "ref_subjects": [...]}
        if isinstance(row.result, dict):
            gpa = _grade(row.result.get("gpa"))
            subjects = _subjects(row.result.get("ref_subjects"))
        else:
            gpa = _grade(row.result)
            subjects = []
        passed = row.passed is not False
        semester, published_at = row.semester, row.published_at
    else:
        gpa = _grade(row.gpa if not _blank(row.gpa) else row.result.gpa)
        passed = row.passed
        subjects = _subjects(row.result.ref_subjects)
        semester, published_at = row.semester, row.published_at

    return ResultEntry(
        published_at=_timestamp(published_at),
        semester="1" if _blank(semester) or semester == 0 else stringify(semester),
        passed=passed and gpa != REFERENCE_MARKER,
        gpa=gpa,
        result=GradeResult(gpa=gpa, ref_subjects=subjects),
    )


def normalize_cumulative(row: CumulativeRecord | FallbackCgpaRow | CgpaEntry) -> CgpaEntry:
    """One CGPA entry from any of the cumulative shapes."""
    published_at = row.created_at if isinstance(row, CumulativeRecord) else row.published_at
    semester = row.semester
    return CgpaEntry(
        semester=FINAL_SEMESTER if _blank(semester) or semester == 0 else stringify(semester),
        cgpa=DEFAULT_CGPA if _blank(row.cgpa) else stringify(row.cgpa),
        published_at=_timestamp(published_at),
    )


def normalize(
    record: PrimaryRecord,
    institute: InstituteRecord | None,
    grades: Iterable[RawGradeRow | dict[str, Any]],
    cumulatives: Iterable[CumulativeRecord | FallbackCgpaRow],
    provenance: str,
    time: str | None = None,
    cgpa_limit: int = CGPA_LIMIT,
) -> CanonicalResult:
    """Build the canonical result for a record matched on a configured source.

    Args:
        record: Matched student row
        institute: Separately fetched institute; the embedded one is used otherwise
        grades: Per-semester rows from the winning source; mappings are
            validated through the tagged union on their ``shape`` key
        cumulatives: CGPA rows from whichever source answered first
        provenance: Id of the source that answered
        time: Resolution timestamp to stamp on the result
    """
    return CanonicalResult(
        time=time,
        roll=record.roll_number,
        regulation=record.regulation_year,
        exam=record.program_name,
        source=provenance,
        institute_data=normalize_institute(institute or record.institute, record.institute_code),
        result_data=[normalize_grade(g) for g in _GRADE_ROWS.validate_python(list(grades))],
        cgpa_data=[normalize_cumulative(c) for c in list(cumulatives)[:cgpa_limit]],
    )


def normalize_fallback(
    payload: FallbackPayload,
    key: QueryKey,
    cgpa_limit: int = CGPA_LIMIT,
) -> CanonicalResult:
    """Canonical result from the external service payload."""
    return CanonicalResult(
        time=payload.time or datetime.now(UTC).isoformat(),
        roll=_text(payload.roll, key.roll_number),
        regulation=_text(payload.regulation, key.regulation_year),
        exam=_text(payload.exam, key.program_name),
        source=WEB_API_SOURCE,
        institute_data=normalize_institute(payload.institute_data),
        result_data=[normalize_grade(r) for r in payload.result_data],
        cgpa_data=[normalize_cumulative(c) for c in payload.cgpa_data[:cgpa_limit]],
    )


def renormalize(result: CanonicalResult, cgpa_limit: int = CGPA_LIMIT) -> CanonicalResult:
    """Re-apply the default policy to a canonical result.

    Idempotent: a result with no missing fields comes back unchanged.
    """
    return result.model_copy(
        update={
            "institute_data": normalize_institute(result.institute_data),
            "result_data": [normalize_grade(r) for r in result.result_data],
            "cgpa_data": [normalize_cumulative(c) for c in result.cgpa_data[:cgpa_limit]],
        }
    )

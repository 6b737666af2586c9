"""Tests for secondary data retrieval."""
from __future__ import annotations

import pytest

from bteb_results.enrichment import enrich, fetch_cumulatives_across_all, fetch_grades
from bteb_results.exceptions import SourceTimeout, SourceUnavailable
from bteb_results.models.query import QueryKey
from bteb_results.models.records import CumulativeRecord, GradeRecord, InstituteRecord

from helpers import PROGRAM, REGULATION, ROLL, FakeSource, make_registry

KEY = QueryKey(roll_number=ROLL, regulation_year=REGULATION, program_name=PROGRAM)

GRADES = [GradeRecord(semester=1, gpa=3.5), GradeRecord(semester=2, gpa=3.75)]


def cgpa_rows(n: int) -> list[CumulativeRecord]:
    return [CumulativeRecord(semester=i + 1, cgpa=3.0) for i in range(n)]


@pytest.mark.asyncio
async def test_grades_come_only_from_winner():
    winner = FakeSource("winner", grades=GRADES)
    other = FakeSource("other", grades=[GradeRecord(semester=1, gpa=1.0)])
    registry = make_registry(winner, other)

    grades = await fetch_grades(registry, "winner", ROLL, timeout=1.0)

    assert grades == GRADES
    assert "list_grades" not in other.calls


@pytest.mark.asyncio
async def test_grade_failure_yields_empty_list():
    registry = make_registry(
        FakeSource("err", grades_error=SourceUnavailable("err", "HTTP 500")),
        FakeSource("slow", grades=GRADES, grades_delay=1.0),
    )

    assert await fetch_grades(registry, "err", ROLL, timeout=1.0) == []
    assert await fetch_grades(registry, "slow", ROLL, timeout=0.05) == []


@pytest.mark.asyncio
async def test_cumulatives_first_non_empty_wins():
    """An empty answer does not win the race; a later non-empty one does."""
    empty = FakeSource("empty", cumulatives=[])
    late = FakeSource("late", cumulatives=cgpa_rows(3), cumulatives_delay=0.02)
    registry = make_registry(empty, late)

    rows, source = await fetch_cumulatives_across_all(
        registry, registry.search_order(), ROLL, per_source_timeout=1.0
    )

    assert source == "late"
    assert len(rows) == 3


@pytest.mark.asyncio
async def test_cumulatives_are_capped():
    registry = make_registry(FakeSource("big", cumulatives=cgpa_rows(45)))

    rows, _ = await fetch_cumulatives_across_all(
        registry, registry.search_order(), ROLL, per_source_timeout=1.0
    )

    assert len(rows) == 20
    assert rows[-1].semester == 20


@pytest.mark.asyncio
async def test_cumulatives_absent_everywhere():
    registry = make_registry(
        FakeSource("a", cumulatives_error=SourceTimeout("a")),
        FakeSource("b", cumulatives=[]),
    )

    rows, source = await fetch_cumulatives_across_all(
        registry, registry.search_order(), ROLL, per_source_timeout=0.5
    )

    assert rows == []
    assert source is None


@pytest.mark.asyncio
async def test_enrich_branches_are_independent():
    """A failing grade lookup does not prevent CGPA or institute retrieval."""
    institute = InstituteRecord(code="23091", name="Dhaka Polytechnic Institute", district="Dhaka")
    winner = FakeSource(
        "winner",
        grades_error=SourceUnavailable("winner", "HTTP 503"),
        institute=institute,
    )
    secondary = FakeSource("secondary", cumulatives=cgpa_rows(2))
    registry = make_registry(winner, secondary)

    enrichment = await enrich(
        registry,
        registry.get("winner"),
        registry.search_order(),
        KEY,
        per_source_timeout=1.0,
        institute_code="23091",
    )

    assert enrichment.grades == []
    assert len(enrichment.cumulatives) == 2
    assert enrichment.cumulative_source == "secondary"
    assert enrichment.institute == institute


@pytest.mark.asyncio
async def test_enrich_skips_institute_lookup_without_code():
    winner = FakeSource("winner", grades=GRADES)
    registry = make_registry(winner)

    enrichment = await enrich(
        registry, registry.get("winner"), registry.search_order(), KEY, per_source_timeout=1.0
    )

    assert enrichment.institute is None
    assert "find_institute" not in winner.calls
    assert enrichment.grades == GRADES

"""Shared fakes for resolver tests."""
from __future__ import annotations

import asyncio

from bteb_results.models.records import (
    CumulativeRecord,
    GradeRecord,
    InstituteRecord,
    PrimaryRecord,
)
from bteb_results.models.source import SourceDescriptor
from bteb_results.sources.base import CGPA_LIMIT, BaseSourceClient
from bteb_results.sources.registry import SourceRegistry

PROGRAM = "Diploma in Engineering"
REGULATION = "2022"
ROLL = "721942"


def student(
    roll: str = ROLL,
    regulation: str = REGULATION,
    program: str = PROGRAM,
    institute_code: str | None = "23091",
    institute: InstituteRecord | None = None,
) -> PrimaryRecord:
    return PrimaryRecord(
        roll_number=roll,
        regulation_year=regulation,
        program_name=program,
        institute_code=institute_code,
        created_at="2024-06-01T10:00:00Z",
        institute=institute,
    )


class FakeSource(BaseSourceClient):
    """In-memory source with configurable latency and failures.

    ``completed`` records calls that ran to completion, so tests can tell an
    abandoned late arrival from one whose answer was used.
    """

    kind = "fake"

    def __init__(
        self,
        source_id: str,
        record: PrimaryRecord | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        grades: list[GradeRecord] | None = None,
        grades_delay: float = 0.0,
        grades_error: Exception | None = None,
        cumulatives: list[CumulativeRecord] | None = None,
        cumulatives_delay: float = 0.0,
        cumulatives_error: Exception | None = None,
        institute: InstituteRecord | None = None,
        regulations: list[str] | None = None,
        match_any: bool = False,
        timeout: float | None = None,
        active: bool = True,
    ) -> None:
        super().__init__(
            SourceDescriptor(id=source_id, kind=self.kind, timeout=timeout, active=active)
        )
        self.record = record
        self.delay = delay
        self.error = error
        self.grades = grades or []
        self.grades_delay = grades_delay
        self.grades_error = grades_error
        self.cumulatives = cumulatives or []
        self.cumulatives_delay = cumulatives_delay
        self.cumulatives_error = cumulatives_error
        self.institute = institute
        self.regulations = regulations or []
        self.match_any = match_any
        self.calls: list[str] = []
        self.completed: list[str] = []
        self.cancelled: list[str] = []
        self.closed = False

    async def _wait(self, name: str, delay: float) -> None:
        self.calls.append(name)
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise

    async def find_primary(self, program, regulation, roll):
        await self._wait("find_primary", self.delay)
        if self.error:
            raise self.error
        self.completed.append("find_primary")
        if self.record is None:
            return None
        if not self.match_any and (
            self.record.program_name,
            self.record.regulation_year,
            self.record.roll_number,
        ) != (program, regulation, roll):
            return None
        return self.record

    async def find_institute(self, program, regulation, institute_code):
        await self._wait("find_institute", 0)
        return self.institute

    async def list_grades(self, roll):
        await self._wait("list_grades", self.grades_delay)
        if self.grades_error:
            raise self.grades_error
        self.completed.append("list_grades")
        return list(self.grades)

    async def list_cumulatives(self, roll, limit=CGPA_LIMIT):
        # Returns every row; ``limit`` is left to the caller
        await self._wait("list_cumulatives", self.cumulatives_delay)
        if self.cumulatives_error:
            raise self.cumulatives_error
        self.completed.append("list_cumulatives")
        return list(self.cumulatives)

    async def list_regulations(self, program):
        await self._wait("list_regulations", self.delay)
        return list(self.regulations)

    async def ping(self):
        await self._wait("ping", self.delay)
        if self.error:
            raise self.error
        return True

    async def close(self):
        self.closed = True


def make_registry(*fakes: FakeSource, **kwargs) -> SourceRegistry:
    """Registry whose 'fake' kind resolves to the given instances."""
    by_id = {fake.source_id: fake for fake in fakes}
    return SourceRegistry(
        [fake.descriptor for fake in fakes],
        factories={"fake": lambda d: by_id[d.id]},
        **kwargs,
    )

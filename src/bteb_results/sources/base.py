"""Base interface for result record sources."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..models.records import CumulativeRecord, GradeRecord, InstituteRecord, PrimaryRecord
    from ..models.source import SourceDescriptor

# Upper bound on cumulative rows a source returns for one roll
CGPA_LIMIT = 20


@runtime_checkable
class SourceClient(Protocol):
    """Protocol defining the queries every configured source must answer."""

    source_id: str

    async def find_primary(
        self, program: str, regulation: str, roll: str
    ) -> PrimaryRecord | None:
        """Find the single student row matching all three key fields.

        Returns:
            The record, or None when the source has no match
        """
        ...

    async def find_institute(
        self, program: str, regulation: str, institute_code: str
    ) -> InstituteRecord | None:
        """Look up an institute by code within a program and regulation."""
        ...

    async def list_grades(self, roll: str) -> list[GradeRecord]:
        """Per-semester GPA rows, semester ascending."""
        ...

    async def list_cumulatives(self, roll: str, limit: int = CGPA_LIMIT) -> list[CumulativeRecord]:
        """CGPA rows, semester ascending, at most ``limit``."""
        ...

    async def list_regulations(self, program: str) -> list[str]:
        """Regulation years known for a program."""
        ...

    async def ping(self) -> bool:
        """Cheap connectivity check."""
        ...

    async def close(self) -> None:
        ...


class BaseSourceClient(ABC):
    """Abstract base class for result sources bound to one descriptor."""

    kind: str = "base"

    def __init__(self, descriptor: SourceDescriptor) -> None:
        self.descriptor = descriptor

    @property
    def source_id(self) -> str:
        return self.descriptor.id

    @abstractmethod
    async def find_primary(
        self, program: str, regulation: str, roll: str
    ) -> PrimaryRecord | None:
        """Find the student row matching program, regulation and roll."""

    @abstractmethod
    async def find_institute(
        self, program: str, regulation: str, institute_code: str
    ) -> InstituteRecord | None:
        """Look up an institute by code."""

    @abstractmethod
    async def list_grades(self, roll: str) -> list[GradeRecord]:
        """Per-semester GPA rows."""

    @abstractmethod
    async def list_cumulatives(self, roll: str, limit: int = CGPA_LIMIT) -> list[CumulativeRecord]:
        """CGPA rows, bounded by ``limit``."""

    @abstractmethod
    async def list_regulations(self, program: str) -> list[str]:
        """Regulation years for a program."""

    @abstractmethod
    async def ping(self) -> bool:
        """Connectivity check."""

    async def close(self) -> None:
        """Release connections. No-op for sources without any."""

    async def __aenter__(self) -> BaseSourceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        await self.close()
        return False


def semester_sort_key(value: object) -> tuple[int, int | str]:
    """Order numeric semesters before labels such as 'Final'."""
    try:
        return (0, int(str(value)))
    except (TypeError, ValueError):
        return (1, str(value))

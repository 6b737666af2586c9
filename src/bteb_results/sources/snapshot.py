"""Local table export used as an offline source."""

import asyncio
import json
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import SourceUnavailable
from ..models.records import CumulativeRecord, GradeRecord, InstituteRecord, PrimaryRecord
from ..models.source import SourceDescriptor, SourceKind
from .base import CGPA_LIMIT, BaseSourceClient, semester_sort_key


class SnapshotSource(BaseSourceClient):
    """Result tables read from a JSON or YAML export.

    The file holds one list of rows per table, using the same column names
    as the Supabase schema::

        students: [{roll_number, program_name, regulation_year, institute_code, created_at}]
        institutes: [{institute_code, program_name, regulation_year, name, district}]
        gpa_records: [{roll_number, semester, gpa, is_reference, ref_subjects, created_at}]
        cgpa_records: [{roll_number, semester, cgpa, created_at}]
        regulations: [{program_name, regulation_year}]

    The file is read on first query, in a worker thread, and kept in memory.
    A missing or unreadable file raises ``SourceUnavailable`` from that query.
    """

    kind = SourceKind.SNAPSHOT.value

    def __init__(self, descriptor: SourceDescriptor) -> None:
        super().__init__(descriptor)
        self.path = Path(descriptor.endpoint) if descriptor.endpoint else None
        self._tables: dict[str, list[dict[str, Any]]] | None = None
        self._load_lock = asyncio.Lock()

    def _load(self) -> dict[str, list[dict[str, Any]]]:
        if self.path is None or not self.path.is_file():
            raise SourceUnavailable(self.source_id, f"snapshot not found: {self.path}")

        try:
            with open(self.path, encoding="utf-8") as f:
                if self.path.suffix.lower() in (".yml", ".yaml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise SourceUnavailable(self.source_id, f"unreadable snapshot: {e}") from e

        if not isinstance(data, dict):
            raise SourceUnavailable(self.source_id, "snapshot must map table names to rows")
        return {name: rows for name, rows in data.items() if isinstance(rows, list)}

    async def _loaded(self) -> dict[str, list[dict[str, Any]]]:
        if self._tables is None:
            async with self._load_lock:
                if self._tables is None:
                    self._tables = await asyncio.to_thread(self._load)
        return self._tables

    async def _rows(self, table: str, **filters: str) -> list[dict[str, Any]]:
        tables = await self._loaded()
        return [
            row
            for row in tables.get(table, [])
            if all(str(row.get(col)) == value for col, value in filters.items())
        ]

    async def find_primary(
        self, program: str, regulation: str, roll: str
    ) -> PrimaryRecord | None:
        rows = await self._rows(
            "students", program_name=program, regulation_year=regulation, roll_number=roll
        )
        if not rows:
            return None
        student = dict(rows[0])
        code = student.get("institute_code")
        if code is not None:
            institutes = await self._rows(
                "institutes",
                program_name=program,
                regulation_year=regulation,
                institute_code=str(code),
            )
            student["institutes"] = institutes[0] if institutes else None
        return PrimaryRecord.model_validate(student)

    async def find_institute(
        self, program: str, regulation: str, institute_code: str
    ) -> InstituteRecord | None:
        rows = await self._rows(
            "institutes",
            program_name=program,
            regulation_year=regulation,
            institute_code=institute_code,
        )
        return InstituteRecord.model_validate(rows[0]) if rows else None

    async def list_grades(self, roll: str) -> list[GradeRecord]:
        rows = sorted(await self._rows("gpa_records", roll_number=roll),
                      key=lambda r: semester_sort_key(r.get("semester")))
        return [GradeRecord.model_validate(row) for row in rows]

    async def list_cumulatives(self, roll: str, limit: int = CGPA_LIMIT) -> list[CumulativeRecord]:
        rows = sorted(await self._rows("cgpa_records", roll_number=roll),
                      key=lambda r: semester_sort_key(r.get("semester")))
        return [CumulativeRecord.model_validate(row) for row in rows[:limit]]

    async def list_regulations(self, program: str) -> list[str]:
        return [
            str(row["regulation_year"])
            for row in await self._rows("regulations", program_name=program)
            if row.get("regulation_year") is not None
        ]

    async def ping(self) -> bool:
        return bool(await self._loaded())

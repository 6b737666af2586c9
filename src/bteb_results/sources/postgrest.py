"""Supabase / PostgREST source.

Talks to the ``/rest/v1`` REST surface directly with httpx using ``eq.``
filters, ``order`` and ``limit`` query parameters, authenticated with the
project's API key.
"""
from __future__ import annotations

from typing import Any

import httpx
import structlog

from ..exceptions import SourceTimeout, SourceUnavailable
from ..models.records import CumulativeRecord, GradeRecord, InstituteRecord, PrimaryRecord
from ..models.source import SourceDescriptor, SourceKind
from .base import CGPA_LIMIT, BaseSourceClient

logger = structlog.get_logger(__name__)

STUDENT_SELECT = (
    "roll_number,program_name,regulation_year,institute_code,created_at,"
    "institutes!inner(institute_code,name,district)"
)
GPA_SELECT = "semester,gpa,is_reference,ref_subjects,created_at"
CGPA_SELECT = "semester,cgpa,created_at"
INSTITUTE_SELECT = "institute_code,name,district"


def _eq(value: str) -> str:
    return f"eq.{value}"


class PostgrestSource(BaseSourceClient):
    """Result tables served by a Supabase project."""

    kind = SourceKind.POSTGREST.value

    def __init__(
        self,
        descriptor: SourceDescriptor,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Build the HTTP client for a descriptor.

        Args:
            descriptor: Source configuration (endpoint is the project URL)
            timeout: Transport-level timeout; callers still bound each call
            transport: Optional httpx transport (tests use MockTransport)

        Raises:
            SourceUnavailable: endpoint is not an http(s) URL or credential is missing
        """
        super().__init__(descriptor)
        try:
            url = httpx.URL(descriptor.endpoint)
        except (httpx.InvalidURL, TypeError) as e:
            raise SourceUnavailable(descriptor.id, f"malformed endpoint: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise SourceUnavailable(descriptor.id, f"malformed endpoint: {descriptor.endpoint!r}")
        if not descriptor.credential:
            raise SourceUnavailable(descriptor.id, "missing credential")

        base_url = f"{str(url).rstrip('/')}/rest/v1"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "apikey": descriptor.credential,
                "Authorization": f"Bearer {descriptor.credential}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        """GET rows from a table, translating transport failures."""
        try:
            resp = await self._client.get(f"/{table}", params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            raise SourceTimeout(self.source_id) from e
        except httpx.HTTPStatusError as e:
            raise SourceUnavailable(
                self.source_id, f"{table}: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise SourceUnavailable(self.source_id, f"{table}: {str(e) or type(e).__name__}") from e

        if not isinstance(data, list):
            raise SourceUnavailable(self.source_id, f"{table}: expected a row list")
        return data

    async def find_primary(
        self, program: str, regulation: str, roll: str
    ) -> PrimaryRecord | None:
        rows = await self._select(
            "students",
            {
                "select": STUDENT_SELECT,
                "program_name": _eq(program),
                "regulation_year": _eq(regulation),
                "roll_number": _eq(roll),
                "institutes.program_name": _eq(program),
                "institutes.regulation_year": _eq(regulation),
                "limit": "1",
            },
        )
        if not rows:
            return None
        return PrimaryRecord.model_validate(rows[0])

    async def find_institute(
        self, program: str, regulation: str, institute_code: str
    ) -> InstituteRecord | None:
        rows = await self._select(
            "institutes",
            {
                "select": INSTITUTE_SELECT,
                "program_name": _eq(program),
                "regulation_year": _eq(regulation),
                "institute_code": _eq(institute_code),
                "limit": "1",
            },
        )
        return InstituteRecord.model_validate(rows[0]) if rows else None

    async def list_grades(self, roll: str) -> list[GradeRecord]:
        rows = await self._select(
            "gpa_records",
            {"select": GPA_SELECT, "roll_number": _eq(roll), "order": "semester.asc"},
        )
        return [GradeRecord.model_validate(row) for row in rows]

    async def list_cumulatives(self, roll: str, limit: int = CGPA_LIMIT) -> list[CumulativeRecord]:
        rows = await self._select(
            "cgpa_records",
            {
                "select": CGPA_SELECT,
                "roll_number": _eq(roll),
                "order": "semester.asc",
                "limit": str(limit),
            },
        )
        return [CumulativeRecord.model_validate(row) for row in rows[:limit]]

    async def list_regulations(self, program: str) -> list[str]:
        rows = await self._select(
            "regulations", {"select": "regulation_year", "program_name": _eq(program)}
        )
        return [str(row["regulation_year"]) for row in rows if row.get("regulation_year") is not None]

    async def ping(self) -> bool:
        await self._select("programs", {"select": "*", "limit": "1"})
        return True

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self._client.aclose()
        logger.debug("source.closed", source=self.source_id)

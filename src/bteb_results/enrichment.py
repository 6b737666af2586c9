"""Secondary data retrieval once a primary record has been matched."""
from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from .dispatcher import DEFAULT_GRACE_SECONDS, race_first
from .models.records import CumulativeRecord, GradeRecord, InstituteRecord
from .sources.base import CGPA_LIMIT

if TYPE_CHECKING:
    from .models.query import QueryKey
    from .models.source import SourceDescriptor
    from .sources.registry import SourceRegistry

logger = structlog.get_logger(__name__)


@dataclass
class Enrichment:
    """Secondary datasets gathered for a matched student."""
    grades: list[GradeRecord] = field(default_factory=list)
    cumulatives: list[CumulativeRecord] = field(default_factory=list)
    institute: InstituteRecord | None = None
    cumulative_source: str | None = None


async def fetch_grades(
    registry: SourceRegistry,
    source_id: str,
    roll: str,
    timeout: float,
) -> list[GradeRecord]:
    """GPA rows from the winning source only; any failure yields an empty list."""
    try:
        client = registry.resolve(source_id)
        return await asyncio.wait_for(client.list_grades(roll), timeout=timeout)
    except (asyncio.TimeoutError, TimeoutError):
        logger.warning("enrich.grades_timeout", source=source_id, timeout=timeout)
    except Exception as e:
        logger.warning("enrich.grades_failed", source=source_id, error=str(e))
    return []


async def fetch_cumulatives_across_all(
    registry: SourceRegistry,
    sources: Sequence[SourceDescriptor],
    roll: str,
    per_source_timeout: float,
    limit: int = CGPA_LIMIT,
    grace: float = DEFAULT_GRACE_SECONDS,
) -> tuple[list[CumulativeRecord], str | None]:
    """Race CGPA lookups across every source; first non-empty list wins.

    The cumulative table may live on a different source than the student
    row, so every source is asked regardless of which one matched.

    Returns:
        (records capped at ``limit``, id of the source that supplied them)
    """

    def cumulative_call(source_id: str):
        async def call() -> list[CumulativeRecord]:
            client = registry.resolve(source_id)
            return await client.list_cumulatives(roll, limit)
        return call

    outcome = await race_first(
        {d.id: cumulative_call(d.id) for d in sources},
        timeouts={d.id: d.effective_timeout(per_source_timeout) for d in sources},
        accept=lambda records: len(records) > 0,
        grace=grace,
        label="enrich.cgpa",
    )
    if not outcome.found:
        return [], None
    return list(outcome.value or [])[:limit], outcome.winner


async def fetch_institute(
    registry: SourceRegistry,
    source_id: str,
    key: QueryKey,
    institute_code: str,
    timeout: float,
) -> InstituteRecord | None:
    """Institute row from the winning source; failures leave it absent."""
    try:
        client = registry.resolve(source_id)
        return await asyncio.wait_for(
            client.find_institute(key.program_name, key.regulation_year, institute_code),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, TimeoutError):
        logger.warning("enrich.institute_timeout", source=source_id, timeout=timeout)
    except Exception as e:
        logger.warning("enrich.institute_failed", source=source_id, error=str(e))
    return None


async def _absent() -> None:
    return None


async def enrich(
    registry: SourceRegistry,
    winner: SourceDescriptor,
    sources: Sequence[SourceDescriptor],
    key: QueryKey,
    per_source_timeout: float,
    institute_code: str | None = None,
    limit: int = CGPA_LIMIT,
    grace: float = DEFAULT_GRACE_SECONDS,
) -> Enrichment:
    """Gather grades, cumulatives and (if needed) the institute concurrently.

    Each branch absorbs its own failures, so one never affects another.

    Args:
        winner: Source that answered the primary lookup
        sources: Every source eligible for the cumulative race
        institute_code: Set only when the primary record lacks an embedded institute
    """
    timeout = winner.effective_timeout(per_source_timeout)
    grades, (cumulatives, cumulative_source), institute = await asyncio.gather(
        fetch_grades(registry, winner.id, key.roll_number, timeout),
        fetch_cumulatives_across_all(
            registry, sources, key.roll_number, per_source_timeout, limit=limit, grace=grace
        ),
        fetch_institute(registry, winner.id, key, institute_code, timeout)
        if institute_code
        else _absent(),
    )
    logger.debug(
        "enrich.done",
        source=winner.id,
        grades=len(grades),
        cumulatives=len(cumulatives),
        cumulative_source=cumulative_source,
    )
    return Enrichment(
        grades=grades,
        cumulatives=cumulatives,
        institute=institute,
        cumulative_source=cumulative_source,
    )

"""Racing query dispatch across configured sources.

Every source is queried concurrently, each call bounded by its own timeout.
The first acceptable answer wins; the remaining calls are cancelled and
whatever they would have returned is discarded. A timeout, an error or an
empty answer is a miss for that source, never a failure of the race.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

from .models.query import QueryKey
from .models.records import PrimaryRecord

if TYPE_CHECKING:
    from .models.source import SourceDescriptor
    from .sources.registry import SourceRegistry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Slack on top of the longest per-source timeout before stragglers are cancelled
DEFAULT_GRACE_SECONDS = 0.05


class AttemptStatus(str, Enum):
    """Outcome of one source within one race."""
    HIT = "hit"
    MISS = "miss"  # Answered, but nothing acceptable
    TIMEOUT = "timeout"
    ERROR = "error"
    ABANDONED = "abandoned"  # Cancelled because another source won


@dataclass
class SourceAttempt:
    """Result bookkeeping for a single source in a race."""
    source_id: str
    status: AttemptStatus
    elapsed_ms: float
    error: str | None = None


@dataclass
class RaceOutcome(Generic[T]):
    """Winner of a race (if any) plus every source's attempt."""
    winner: str | None = None
    value: T | None = None
    attempts: list[SourceAttempt] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.winner is not None

    @property
    def attempted(self) -> list[str]:
        return [a.source_id for a in self.attempts]


async def race_first(
    calls: Mapping[str, Callable[[], Awaitable[T]]],
    timeouts: Mapping[str, float] | float,
    accept: Callable[[T], bool] = bool,
    grace: float = DEFAULT_GRACE_SECONDS,
    label: str = "race",
) -> RaceOutcome[T]:
    """Run one call per source and return the first acceptable value.

    Args:
        calls: Zero-argument coroutine factories keyed by source id
        timeouts: A timeout for every source, or a per-source mapping
        accept: Predicate deciding whether a returned value is a hit
        grace: Extra time allowed past the longest timeout
        label: Name used in log events

    Returns:
        RaceOutcome with the winning source id and value, or no winner.
        Attempts are listed in the order of ``calls``. When several hits
        land in the same scheduler step, the fastest one wins.
    """
    if not calls:
        return RaceOutcome()

    def timeout_for(source_id: str) -> float:
        if isinstance(timeouts, Mapping):
            return timeouts[source_id]
        return timeouts

    started = time.monotonic()

    async def attempt(source_id: str, call: Callable[[], Awaitable[T]]) -> tuple[SourceAttempt, T | None]:
        timeout = timeout_for(source_id)
        start = time.monotonic()
        value: T | None = None
        try:
            value = await asyncio.wait_for(call(), timeout=timeout)
        except (asyncio.TimeoutError, TimeoutError):
            status, error = AttemptStatus.TIMEOUT, f"timeout after {timeout:.2f}s"
        except Exception as e:
            status, error = AttemptStatus.ERROR, str(e) or type(e).__name__
        else:
            hit = value is not None and accept(value)
            status, error = (AttemptStatus.HIT if hit else AttemptStatus.MISS), None

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(
            f"{label}.attempt",
            source=source_id,
            status=status.value,
            elapsed_ms=round(elapsed_ms, 1),
            error=error,
        )
        return SourceAttempt(source_id, status, elapsed_ms, error), value

    tasks = {
        asyncio.create_task(attempt(source_id, call), name=f"{label}:{source_id}"): source_id
        for source_id, call in calls.items()
    }
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(timeout_for(s) for s in calls) + grace

    finished: dict[str, SourceAttempt] = {}
    outcome: RaceOutcome[T] = RaceOutcome()
    pending = set(tasks)

    try:
        while pending and outcome.winner is None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            hits: list[tuple[SourceAttempt, T]] = []
            for task in done:
                result, value = task.result()
                finished[result.source_id] = result
                if result.status is AttemptStatus.HIT:
                    hits.append((result, value))
            if hits:
                best, value = min(hits, key=lambda h: h[0].elapsed_ms)
                outcome.winner, outcome.value = best.source_id, value
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    elapsed_ms = (time.monotonic() - started) * 1000
    for task in pending:
        source_id = tasks[task]
        if outcome.winner is not None:
            finished[source_id] = SourceAttempt(source_id, AttemptStatus.ABANDONED, elapsed_ms)
        else:
            finished[source_id] = SourceAttempt(
                source_id, AttemptStatus.TIMEOUT, elapsed_ms, error="deadline exceeded"
            )

    outcome.attempts = [finished[source_id] for source_id in calls]
    return outcome


def matches_key(record: PrimaryRecord, key: QueryKey) -> bool:
    """Exact equality on program, regulation and roll."""
    return (
        record.program_name == key.program_name
        and record.regulation_year == key.regulation_year
        and record.roll_number == key.roll_number
    )


async def dispatch(
    registry: SourceRegistry,
    sources: Sequence[SourceDescriptor],
    key: QueryKey,
    per_source_timeout: float,
    grace: float = DEFAULT_GRACE_SECONDS,
) -> RaceOutcome[PrimaryRecord]:
    """Race ``find_primary`` across sources; first exact match wins.

    A descriptor's own timeout overrides ``per_source_timeout``. No winner
    means the caller should escalate to the fallback.
    """

    def primary_call(source_id: str) -> Callable[[], Awaitable[PrimaryRecord | None]]:
        async def call() -> PrimaryRecord | None:
            client = registry.resolve(source_id)
            return await client.find_primary(key.program_name, key.regulation_year, key.roll_number)
        return call

    outcome = await race_first(
        {d.id: primary_call(d.id) for d in sources},
        timeouts={d.id: d.effective_timeout(per_source_timeout) for d in sources},
        accept=lambda record: matches_key(record, key),
        grace=grace,
        label="dispatch",
    )

    if outcome.found:
        logger.info("dispatch.hit", key=str(key), source=outcome.winner)
    else:
        logger.info(
            "dispatch.miss",
            key=str(key),
            attempts={a.source_id: a.status.value for a in outcome.attempts},
        )
    return outcome

"""Tests for the racing query dispatcher."""

from __future__ import annotations

import asyncio
import time

import pytest

from bteb_results.dispatcher import AttemptStatus, dispatch, matches_key, race_first
from bteb_results.exceptions import SourceUnavailable
from bteb_results.models.query import QueryKey
from bteb_results.models.source import SourceDescriptor
from bteb_results.sources.registry import SourceRegistry

from helpers import PROGRAM, REGULATION, ROLL, FakeSource, make_registry, student

KEY = QueryKey(roll_number=ROLL, regulation_year=REGULATION, program_name=PROGRAM)


def statuses(outcome):
    return {a.source_id: a.status for a in outcome.attempts}


@pytest.mark.asyncio
async def test_first_success_wins_and_losers_are_cancelled():
    """The fastest matching source wins; slower ones are cancelled."""
    slow = FakeSource("slow", record=student(), delay=0.5)
    fast = FakeSource("fast", record=student(), delay=0.01)
    registry = make_registry(slow, fast)

    outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=2.0)

    assert outcome.winner == "fast"
    assert outcome.value == student()
    assert statuses(outcome) == {"slow": AttemptStatus.ABANDONED, "fast": AttemptStatus.HIT}
    assert slow.cancelled == ["find_primary"]
    assert slow.completed == []


@pytest.mark.asyncio
async def test_all_misses_report_not_found():
    """Empty answers, errors and timeouts are all misses, not failures."""
    empty = FakeSource("empty", record=None)
    broken = FakeSource("broken", error=SourceUnavailable("broken", "HTTP 401"))
    stuck = FakeSource("stuck", record=student(), delay=10)
    registry = make_registry(empty, broken, stuck)

    outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=0.1)

    assert not outcome.found
    assert outcome.value is None
    assert statuses(outcome) == {
        "empty": AttemptStatus.MISS,
        "broken": AttemptStatus.ERROR,
        "stuck": AttemptStatus.TIMEOUT,
    }
    assert "HTTP 401" in outcome.attempts[1].error
    assert outcome.attempted == ["empty", "broken", "stuck"]


@pytest.mark.asyncio
async def test_dispatch_is_bounded_by_the_per_source_timeout():
    """Sources that never answer cannot hold the dispatch open."""
    registry = make_registry(
        FakeSource("a", record=student(), delay=30),
        FakeSource("b", record=student(), delay=30),
    )

    start = time.monotonic()
    outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=0.1)
    elapsed = time.monotonic() - start

    assert not outcome.found
    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_descriptor_timeout_overrides_default():
    quick = FakeSource("quick", record=student(), delay=0.2, timeout=0.05)
    registry = make_registry(quick)

    outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=5.0)

    assert statuses(outcome) == {"quick": AttemptStatus.TIMEOUT}


@pytest.mark.asyncio
async def test_record_must_match_every_key_field():
    """A source returning a different roll counts as a miss."""
    sloppy = FakeSource("sloppy", record=student(roll="000001"), match_any=True)
    registry = make_registry(sloppy)

    outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=1.0)

    assert not outcome.found
    assert statuses(outcome) == {"sloppy": AttemptStatus.MISS}


@pytest.mark.asyncio
async def test_winner_is_reproducible_with_fixed_latencies():
    winners = []
    for _ in range(3):
        registry = make_registry(
            FakeSource("a", record=student(), delay=0.08),
            FakeSource("b", record=student(), delay=0.02),
            FakeSource("c", record=student(), delay=0.05),
        )
        outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=1.0)
        winners.append(outcome.winner)

    assert winners == ["b", "b", "b"]


@pytest.mark.asyncio
async def test_client_construction_failure_is_a_miss():
    """A source whose client cannot be built does not break the race."""
    good = FakeSource("good", record=student(), delay=0.01)
    registry = SourceRegistry(
        [SourceDescriptor(id="bad", kind="nope"), good.descriptor],
        factories={"fake": lambda d: good},
    )

    outcome = await dispatch(registry, registry.search_order(), KEY, per_source_timeout=1.0)

    assert outcome.winner == "good"
    assert statuses(outcome)["bad"] == AttemptStatus.ERROR


@pytest.mark.asyncio
async def test_no_sources_means_no_winner():
    registry = make_registry()
    outcome = await dispatch(registry, [], KEY, per_source_timeout=1.0)

    assert not outcome.found
    assert outcome.attempts == []


@pytest.mark.asyncio
async def test_race_first_uses_acceptance_predicate():
    async def value(v, delay):
        await asyncio.sleep(delay)
        return v

    outcome = await race_first(
        {
            "empty": lambda: value([], 0.0),
            "full": lambda: value([1, 2], 0.02),
        },
        timeouts=1.0,
        accept=lambda items: len(items) > 0,
    )

    assert outcome.winner == "full"
    assert outcome.value == [1, 2]
    assert [a.status for a in outcome.attempts] == [AttemptStatus.MISS, AttemptStatus.HIT]


def test_matches_key_requires_exact_equality():
    assert matches_key(student(), KEY)
    assert not matches_key(student(regulation="2016"), KEY)
    assert not matches_key(student(program="Diploma in Textile"), KEY)

"""Result resolution: the single entry point the request layer calls."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from .config import ResolverConfig, Settings, build_registry
from .dispatcher import dispatch, race_first
from .enrichment import enrich
from .exceptions import InvalidQuery
from .fallback import WebFallback
from .logging import get_logger
from .models.query import QueryKey
from .models.result import WEB_API_SOURCE, CanonicalResult, NotFoundResult
from .normalizer import normalize
from .sources.registry import ClientFactory, SourceRegistry

logger = get_logger(__name__)

REQUIRED_FIELDS = ("rollNo", "regulation", "program")
MISSING_FIELDS_MESSAGE = "Missing required fields: rollNo, regulation, program"


def parse_request(payload: Mapping[str, Any] | None) -> QueryKey:
    """Validate a raw request body ``{rollNo, regulation, program}``.

    Raises:
        InvalidQuery: a field is missing, blank or malformed
    """
    payload = payload or {}
    values = [payload.get(name) for name in REQUIRED_FIELDS]
    if any(v is None or (isinstance(v, str) and not v.strip()) for v in values):
        raise InvalidQuery(MISSING_FIELDS_MESSAGE)

    roll, regulation, program = values
    try:
        return QueryKey(roll_number=roll, regulation_year=regulation, program_name=program)
    except ValidationError as e:
        raise InvalidQuery(str(e)) from e


class ResultResolver:
    """
    Resolves a student's result across configured sources and the web fallback.

    Flow:
    - Race the primary lookup across the registry's search order
    - On a hit, enrich (grades from the winner, CGPA from any source) and normalize
    - Otherwise ask the external service
    - Otherwise return a NotFoundResult naming everything attempted
    """

    def __init__(
        self,
        registry: SourceRegistry,
        config: ResolverConfig | None = None,
        fallback: WebFallback | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or ResolverConfig()
        self.fallback = fallback or WebFallback(
            base_url=self.config.web_api_base,
            user_agent=self.config.user_agent,
            cgpa_limit=self.config.cgpa_limit,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        factories: Mapping[str, ClientFactory] | None = None,
    ) -> ResultResolver:
        return cls(build_registry(settings, factories), config=settings.resolver)

    async def resolve(self, key: QueryKey) -> CanonicalResult | NotFoundResult:
        """Resolve one lookup key to a canonical result or a not-found outcome."""
        cfg = self.config
        snapshot = self.registry.snapshot()
        order = list(snapshot.order)

        outcome = await dispatch(self.registry, order, key, cfg.db_timeout, grace=cfg.race_grace)

        if outcome.found and outcome.value is not None:
            record = outcome.value
            winner = next(d for d in order if d.id == outcome.winner)
            # CGPA rows may live on a source that is outside the search order
            enrichment = await enrich(
                self.registry,
                winner,
                list(snapshot.active),
                key,
                cfg.db_timeout,
                institute_code=record.institute_code if record.institute is None else None,
                limit=cfg.cgpa_limit,
                grace=cfg.race_grace,
            )
            return normalize(
                record,
                enrichment.institute,
                enrichment.grades,
                enrichment.cumulatives,
                provenance=winner.id,
                time=datetime.now(UTC).isoformat(),
                cgpa_limit=cfg.cgpa_limit,
            )

        result = await self.fallback.query_external(key, cfg.web_timeout)
        if result is not None:
            return result

        attempted = [*outcome.attempted, WEB_API_SOURCE]
        logger.info("resolve.not_found", key=str(key), attempted=attempted)
        return NotFoundResult(
            roll=key.roll_number,
            regulation=key.regulation_year,
            exam=key.program_name,
            attempted=attempted,
        )

    async def resolve_request(self, payload: Mapping[str, Any] | None) -> CanonicalResult | NotFoundResult:
        """Validate a raw request body and resolve it."""
        return await self.resolve(parse_request(payload))

    async def regulations(self, program: str) -> list[str]:
        """Regulation years for a program, from the first source that knows any."""
        order = list(self.registry.snapshot().order)

        def regulations_call(source_id: str):
            async def call() -> list[str]:
                return await self.registry.resolve(source_id).list_regulations(program)
            return call

        outcome = await race_first(
            {d.id: regulations_call(d.id) for d in order},
            timeouts={d.id: d.effective_timeout(self.config.db_timeout) for d in order},
            accept=lambda years: len(years) > 0,
            grace=self.config.race_grace,
            label="regulations",
        )
        return list(outcome.value or [])

    async def health(self) -> dict[str, Any]:
        """Ping the current source."""
        current = self.registry.current
        if current is None:
            return {"status": "unhealthy", "source": None, "connected": False,
                    "error": "no source configured"}

        descriptor = self.registry.get(current)
        report: dict[str, Any] = {"source": current, "endpoint": descriptor.endpoint}
        try:
            client = self.registry.resolve(current)
            await asyncio.wait_for(client.ping(), timeout=self.config.db_timeout)
        except (asyncio.TimeoutError, TimeoutError):
            return {**report, "status": "unhealthy", "connected": False, "error": "timeout"}
        except Exception as e:
            return {**report, "status": "unhealthy", "connected": False,
                    "error": str(e) or type(e).__name__}
        return {**report, "status": "healthy", "connected": True}

    async def close(self) -> None:
        await self.registry.close()
        await self.fallback.close()

    async def __aenter__(self) -> ResultResolver:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False

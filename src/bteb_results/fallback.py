"""External result service used when no configured source has the student."""
from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .models.query import QueryKey
from .models.records import FallbackPayload
from .models.result import CanonicalResult
from .normalizer import normalize_fallback
from .sources.base import CGPA_LIMIT

logger = structlog.get_logger(__name__)

DEFAULT_WEB_API_BASE = "https://btebresulthub-server.vercel.app"
DEFAULT_USER_AGENT = "BTEB-Results-App/1.0"


class WebFallback:
    """Looks a roll up on the public result service.

    Any transport error, non-200 status, undecodable or empty payload is
    reported as not found (``None``); nothing raises past ``query_external``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_WEB_API_BASE,
        user_agent: str = DEFAULT_USER_AGENT,
        cgpa_limit: int = CGPA_LIMIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.cgpa_limit = cgpa_limit
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _url(self, roll: str) -> str:
        return f"{self.base_url}/results/individual/{quote(roll, safe='')}"

    async def query_external(self, key: QueryKey, timeout: float) -> CanonicalResult | None:
        """Fetch and normalize one result, bounded by ``timeout`` seconds."""
        try:
            result = await asyncio.wait_for(self._fetch(key, timeout), timeout=timeout)
        except (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException):
            logger.warning("fallback.timeout", key=str(key), timeout=timeout)
            return None
        except Exception as e:
            logger.warning("fallback.failed", key=str(key), error=str(e) or type(e).__name__)
            return None

        logger.info("fallback.hit" if result else "fallback.miss", key=str(key))
        return result

    async def _fetch(self, key: QueryKey, timeout: float) -> CanonicalResult | None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.user_agent}, transport=self._transport
            )

        resp = await self._client.get(
            self._url(key.roll_number),
            params={"exam": key.program_name, "regulation": key.regulation_year},
            timeout=timeout,
        )
        if resp.status_code != 200:
            logger.debug("fallback.status", key=str(key), status=resp.status_code)
            return None

        data: Any = resp.json()
        if not isinstance(data, dict) or not data or data.get("success") is False:
            return None

        payload = FallbackPayload.model_validate(data)
        if payload.is_empty():
            return None
        return normalize_fallback(payload, key, cgpa_limit=self.cgpa_limit)

    async def close(self) -> None:
        """Close HTTP client connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

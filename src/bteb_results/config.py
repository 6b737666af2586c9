"""Process configuration: timeouts, fallback endpoint and the source registry file.

Environment (a ``.env`` file is honoured):

- ``DB_TIMEOUT`` / ``WEB_TIMEOUT``: milliseconds, per source and for the fallback
- ``WEB_API_BASE``: external result service
- ``RESULTS_REGISTRY``: path to the YAML registry of sources
- ``RESULTS_SEARCH_ORDER``: comma-separated source ids, overrides the file
- ``RESULTS_ACTIVE_SOURCE``: initial current source
- ``SUPABASE_URL`` / ``SUPABASE_KEY`` (or ``SUPABASE_PRIMARY_*``): single source
  used when no registry file is given
- ``LOG_LEVEL``
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .fallback import DEFAULT_USER_AGENT, DEFAULT_WEB_API_BASE
from .models.source import SourceDescriptor, SourceKind
from .sources.base import CGPA_LIMIT
from .sources.registry import ClientFactory, SourceRegistry

DEFAULT_SOURCE_ID = "primary"


def _ms(name: str, default_ms: float) -> float:
    """Read a millisecond env var and return seconds."""
    try:
        return float(os.getenv(name, default_ms)) / 1000
    except (TypeError, ValueError):
        return default_ms / 1000


class ResolverConfig(BaseModel):
    """Tuning for one resolution."""
    db_timeout: float = Field(default=2.0, gt=0, description="Per-source timeout in seconds")
    web_timeout: float = Field(default=3.0, gt=0, description="Fallback timeout in seconds")
    cgpa_limit: int = Field(default=CGPA_LIMIT, ge=1, le=CGPA_LIMIT, description="Max CGPA rows")
    web_api_base: str = Field(default=DEFAULT_WEB_API_BASE, description="External result service")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    race_grace: float = Field(default=0.05, ge=0, description="Slack past the longest timeout")
    client_timeout: float = Field(default=10.0, gt=0, description="HTTP transport timeout")


class RegistryFile(BaseModel):
    """On-disk registry of sources.

    Example::

        sources:
          - id: primary
            kind: postgrest
            url: https://abcd.supabase.co
            key: <anon key>
            description: 2022 regulation results
          - id: archive
            kind: snapshot
            url: data/archive.json
            timeout: 1.0
        search_order: [primary, archive]
        current: primary
    """
    sources: list[SourceDescriptor] = Field(default_factory=list)
    search_order: list[str] = Field(default_factory=list)
    current: str | None = None


@dataclass
class Settings:
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    sources: list[SourceDescriptor] = field(default_factory=list)
    search_order: list[str] = field(default_factory=list)
    current: str | None = None
    log_level: str = "INFO"


def load_registry_file(path: Path | str) -> RegistryFile:
    """Load and validate a YAML registry file."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    registry = RegistryFile.model_validate(data)
    # Relative snapshot paths are relative to the registry file
    for i, descriptor in enumerate(registry.sources):
        if descriptor.kind == SourceKind.SNAPSHOT.value and descriptor.endpoint:
            snapshot_path = Path(descriptor.endpoint)
            if not snapshot_path.is_absolute():
                registry.sources[i] = descriptor.model_copy(
                    update={"endpoint": str(path.parent / snapshot_path)}
                )
    return registry


def _env_sources() -> list[SourceDescriptor]:
    url = os.getenv("SUPABASE_URL") or os.getenv("SUPABASE_PRIMARY_URL")
    key = os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_PRIMARY_KEY")
    if not url:
        return []
    return [
        SourceDescriptor(
            id=DEFAULT_SOURCE_ID,
            kind=SourceKind.POSTGREST.value,
            endpoint=url,
            credential=key,
            description="Primary Supabase project",
        )
    ]


def load_settings(registry_path: Path | str | None = None) -> Settings:
    """Load configuration from the environment and the optional registry file."""
    from dotenv import load_dotenv

    load_dotenv()

    resolver = ResolverConfig(
        db_timeout=_ms("DB_TIMEOUT", 2000),
        web_timeout=_ms("WEB_TIMEOUT", 3000),
        web_api_base=os.getenv("WEB_API_BASE", DEFAULT_WEB_API_BASE),
    )

    path = registry_path or os.getenv("RESULTS_REGISTRY")
    if path:
        registry = load_registry_file(path)
        sources, search_order, current = registry.sources, registry.search_order, registry.current
    else:
        sources, search_order, current = _env_sources(), [], None

    order_env = os.getenv("RESULTS_SEARCH_ORDER")
    if order_env:
        search_order = [s.strip() for s in order_env.split(",") if s.strip()]

    return Settings(
        resolver=resolver,
        sources=sources,
        search_order=search_order,
        current=os.getenv("RESULTS_ACTIVE_SOURCE") or current,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def build_registry(
    settings: Settings,
    factories: Mapping[str, ClientFactory] | None = None,
) -> SourceRegistry:
    """Registry for the configured sources.

    Raises:
        UnknownSource: search order or current source names an unknown id
    """
    return SourceRegistry(
        settings.sources,
        search_order=settings.search_order or None,
        current=settings.current,
        factories=factories,
        client_timeout=settings.resolver.client_timeout,
    )

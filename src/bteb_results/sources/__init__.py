"""Result sources and the registry that owns their clients."""
from __future__ import annotations

from bteb_results.sources.base import CGPA_LIMIT, BaseSourceClient, SourceClient
from bteb_results.sources.postgrest import PostgrestSource
from bteb_results.sources.registry import (
    ClientFactory,
    RegistrySnapshot,
    SourceRegistry,
    default_factories,
)
from bteb_results.sources.snapshot import SnapshotSource

__all__ = [
    "CGPA_LIMIT",
    "BaseSourceClient",
    "SourceClient",
    "PostgrestSource",
    "SnapshotSource",
    "ClientFactory",
    "RegistrySnapshot",
    "SourceRegistry",
    "default_factories",
]

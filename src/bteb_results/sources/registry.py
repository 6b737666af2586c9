"""Registry of configured sources and their lazily-built clients."""
from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

import structlog

from ..exceptions import SourceUnavailable, UnknownSource
from ..models.source import SourceDescriptor, SourceKind
from .base import SourceClient
from .postgrest import PostgrestSource
from .snapshot import SnapshotSource

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[SourceDescriptor], SourceClient]


def default_factories(client_timeout: float = 10.0) -> dict[str, ClientFactory]:
    """Client constructors for the built-in backend protocols."""
    return {
        SourceKind.POSTGREST.value: lambda d: PostgrestSource(d, timeout=client_timeout),
        SourceKind.SNAPSHOT.value: SnapshotSource,
    }


@dataclass(frozen=True)
class RegistrySnapshot:
    """Point-in-time view of the registry taken once per request."""

    current: str | None
    order: tuple[SourceDescriptor, ...]
    # Every active source, in configuration order, whether or not it is in ``order``
    active: tuple[SourceDescriptor, ...] = ()

    @property
    def source_ids(self) -> list[str]:
        return [d.id for d in self.order]


class SourceRegistry:
    """
    Holds source descriptors and memoises one client per source.

    Clients are constructed on first ``resolve`` and reused until the
    descriptor's endpoint or credential is rotated. Construction failures
    surface as ``SourceUnavailable`` at query time, so a broken source never
    prevents the registry from loading.

    All writes (client cache, descriptors, current-source pointer) happen
    under one lock that is never held across an await.
    """

    def __init__(
        self,
        descriptors: Iterable[SourceDescriptor] = (),
        search_order: Sequence[str] | None = None,
        current: str | None = None,
        factories: Mapping[str, ClientFactory] | None = None,
        client_timeout: float = 10.0,
    ) -> None:
        """Initialize the registry.

        Args:
            descriptors: Configured sources; their order is the default search order
            search_order: Explicit search order; must reference known ids only
            current: Initial current source (defaults to the first active source)
            factories: Extra or overriding client constructors keyed by source kind
            client_timeout: Transport timeout handed to HTTP-backed clients

        Raises:
            UnknownSource: search_order or current names an unconfigured id
        """
        self._lock = threading.Lock()
        self._descriptors: dict[str, SourceDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in self._descriptors:
                raise ValueError(f"duplicate source id: {descriptor.id}")
            self._descriptors[descriptor.id] = descriptor

        self._clients: dict[str, SourceClient] = {}
        self._factories = default_factories(client_timeout)
        if factories:
            self._factories.update(factories)

        if search_order:
            for source_id in search_order:
                if source_id not in self._descriptors:
                    raise UnknownSource(source_id)
            self._search_order: tuple[str, ...] | None = tuple(dict.fromkeys(search_order))
        else:
            self._search_order = None

        if current is not None and current not in self._descriptors:
            raise UnknownSource(current)
        self._current = current or next(
            (d.id for d in self._descriptors.values() if d.active), None
        )

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def current(self) -> str | None:
        """Id of the current source, used by single-source operations."""
        return self._current

    def get(self, source_id: str) -> SourceDescriptor:
        descriptor = self._descriptors.get(source_id)
        if descriptor is None:
            raise UnknownSource(source_id)
        return descriptor

    def list_sources(self) -> list[SourceDescriptor]:
        """All configured descriptors in configuration order."""
        with self._lock:
            return list(self._descriptors.values())

    def search_order(self) -> list[SourceDescriptor]:
        """Active descriptors in the order lookups should fan out to them.

        An explicit search order is authoritative. Without one, the current
        source leads and the rest follow configuration order.
        """
        with self._lock:
            return self._ordered()

    def _ordered(self) -> list[SourceDescriptor]:
        if self._search_order is not None:
            ids = list(self._search_order)
        else:
            ids = list(self._descriptors)
            if self._current in self._descriptors:
                ids.remove(self._current)
                ids.insert(0, self._current)
        return [self._descriptors[i] for i in ids if self._descriptors[i].active]

    def snapshot(self) -> RegistrySnapshot:
        """Atomic copy of the current pointer, search order and active sources."""
        with self._lock:
            return RegistrySnapshot(
                current=self._current,
                order=tuple(self._ordered()),
                active=tuple(d for d in self._descriptors.values() if d.active),
            )

    def set_active(self, source_id: str) -> None:
        """Make a source the current one, activating it if needed.

        Raises:
            UnknownSource: the id is not configured
        """
        with self._lock:
            descriptor = self._descriptors.get(source_id)
            if descriptor is None:
                raise UnknownSource(source_id)
            if not descriptor.active:
                self._descriptors[source_id] = descriptor.model_copy(update={"active": True})
            previous, self._current = self._current, source_id
        logger.info("registry.current_source_changed", previous=previous, current=source_id)

    def resolve(self, source_id: str) -> SourceClient:
        """Return the memoised client for a source, building it on first use.

        Raises:
            UnknownSource: the id is not configured
            SourceUnavailable: the client could not be constructed
        """
        with self._lock:
            descriptor = self._descriptors.get(source_id)
            if descriptor is None:
                raise UnknownSource(source_id)

            client = self._clients.get(source_id)
            if client is not None:
                return client

            factory = self._factories.get(descriptor.kind)
            if factory is None:
                raise SourceUnavailable(source_id, f"unsupported source kind: {descriptor.kind}")
            try:
                client = factory(descriptor)
            except SourceUnavailable as e:
                logger.warning("source.client_failed", source=source_id, reason=e.reason)
                raise
            except Exception as e:
                logger.warning("source.client_failed", source=source_id, reason=str(e))
                raise SourceUnavailable(source_id, str(e) or type(e).__name__) from e

            self._clients[source_id] = client

        logger.info("source.client_created", source=source_id, kind=descriptor.kind)
        return client

    async def rotate_credentials(
        self,
        source_id: str,
        endpoint: str | None = None,
        credential: str | None = None,
    ) -> None:
        """Replace a source's endpoint/credential and drop its cached client."""
        update: dict[str, str] = {}
        if endpoint is not None:
            update["endpoint"] = endpoint
        if credential is not None:
            update["credential"] = credential

        with self._lock:
            descriptor = self._descriptors.get(source_id)
            if descriptor is None:
                raise UnknownSource(source_id)
            if not update:
                return
            self._descriptors[source_id] = descriptor.model_copy(update=update)
            stale = self._clients.pop(source_id, None)

        logger.info("registry.credentials_rotated", source=source_id)
        if stale is not None:
            await stale.close()

    async def close(self) -> None:
        """Close every live client."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            await client.close()

    async def __aenter__(self) -> SourceRegistry:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False

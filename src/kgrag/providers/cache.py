"""Cache of per-credential provider clients.

Tenants may bring their own model credentials; building a client for every
request is wasteful, so clients are kept in a small LRU with a time-to-live.
The cache is an ordinary object owned by whoever composes the services, so
tests can create isolated instances.

Clients dropped by eviction, expiry, ``cleanup()`` or ``clear()`` are
retired rather than discarded. They hold connection pools and are closed by
``close_retired()``, or by ``aclose()`` at shutdown.
"""

import hashlib
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

from kgrag.observability.logging import get_logger

logger = get_logger(__name__)


class ClosableClient(Protocol):
    async def close(self) -> None: ...


T = TypeVar("T", bound=ClosableClient)


class ProviderClientCache(Generic[T]):
    """LRU + TTL cache keyed by a digest of the credential.

    Args:
        max_size: Maximum number of clients kept
        ttl_seconds: Age after which a cached client is rebuilt
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[T, float]] = OrderedDict()
        self._retired: list[T] = []

    @staticmethod
    def _key(api_key: str) -> str:
        # Raw credentials never sit in memory as dict keys
        return hashlib.sha256(api_key.encode("utf-8")).hexdigest()

    def _retire(self, key: str) -> None:
        client, _ = self._entries.pop(key)
        self._retired.append(client)

    def get(self, api_key: str, factory: Callable[[str], T]) -> T:
        """Return the cached client for ``api_key``, building it if needed."""
        if not api_key:
            raise ValueError("api_key is required")

        key = self._key(api_key)
        now = self._clock()

        cached = self._entries.get(key)
        if cached is not None:
            if now - cached[1] < self.ttl_seconds:
                self._entries.move_to_end(key)
                return cached[0]
            self._retire(key)

        client = factory(api_key)
        while len(self._entries) >= self.max_size:
            self._retire(next(iter(self._entries)))
            logger.debug("provider_client_evicted", size=len(self._entries))

        self._entries[key] = (client, now)
        return client

    def cleanup(self) -> int:
        """Retire expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, (_, created) in self._entries.items() if now - created >= self.ttl_seconds]
        for key in expired:
            self._retire(key)
        return len(expired)

    def clear(self) -> None:
        """Retire every cached client."""
        for key in list(self._entries):
            self._retire(key)

    @property
    def retired_count(self) -> int:
        """Number of dropped clients still waiting to be closed."""
        return len(self._retired)

    async def close_retired(self) -> int:
        """Close every retired client and return how many were closed."""
        retired, self._retired = self._retired, []
        for client in retired:
            try:
                await client.close()
            except Exception as e:
                logger.warning(
                    "provider_client_close_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return len(retired)

    async def aclose(self) -> None:
        """Close cached and retired clients and empty the cache."""
        self.clear()
        closed = await self.close_retired()
        logger.debug("provider_client_cache_closed", closed=closed)

    def __len__(self) -> int:
        return len(self._entries)

"""Assembly of the cache subsystem from settings.

A CacheLayer bundles the backend client, accessor and dispatcher so the
application can build one per process and hand it to request handlers.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.cache.accessor import CacheAccessor
from src.cache.client import CacheBackendClient, RedisFactory
from src.cache.invalidation import InvalidationDispatcher
from src.cache.metrics import CacheMetrics
from src.cache.writes import PendingWrites

if TYPE_CHECKING:
    from src.config import Settings

logger = structlog.get_logger(__name__)


@dataclass
class CacheLayer:
    """The cache subsystem's collaborating objects.

    Attributes:
        client: Shared backend client.
        accessor: Cache-aside reads.
        dispatcher: Write-triggered invalidation.
        metrics: Metrics shared by accessor and dispatcher.
        pending: Background writes shared by accessor and dispatcher.
    """

    client: CacheBackendClient
    accessor: CacheAccessor
    dispatcher: InvalidationDispatcher
    metrics: CacheMetrics
    pending: PendingWrites

    async def close(self) -> None:
        """Flush pending background writes and close the connection."""
        await self.accessor.drain()
        await self.client.close()


def create_cache_layer(
    settings: "Settings",
    redis_factory: RedisFactory | None = None,
) -> CacheLayer:
    """Create the cache subsystem.

    Args:
        settings: Application settings.
        redis_factory: Optional Redis client factory, replacing the URL.

    Returns:
        Wired CacheLayer.
    """
    client = CacheBackendClient(
        settings.REDIS_URL,
        connect_timeout=settings.CACHE_CONNECT_TIMEOUT,
        socket_timeout=settings.CACHE_SOCKET_TIMEOUT,
        redis_factory=redis_factory,
        enabled=settings.CACHE_ENABLED,
    )
    metrics = CacheMetrics()
    pending = PendingWrites()
    accessor = CacheAccessor(
        client, ttl_resolver=settings.get_ttl, metrics=metrics, pending=pending
    )
    dispatcher = InvalidationDispatcher(client, metrics=metrics, pending=pending)

    if not client.configured:
        logger.warning(
            "cache_unconfigured",
            enabled=settings.CACHE_ENABLED,
            has_url=bool(settings.REDIS_URL),
        )

    return CacheLayer(
        client=client,
        accessor=accessor,
        dispatcher=dispatcher,
        metrics=metrics,
        pending=pending,
    )

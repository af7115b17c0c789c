"""Redis backend client for the cache layer.

This module owns the single shared Redis connection handle. Every operation
degrades to an "unavailable" result instead of raising, so callers can
always fall back to the system of record.

Features:
- Lazy connection with a PING check and a short reconnect backoff
- Handle teardown on dropped connections, so the next call reconnects
- SCAN-based pattern deletion in fixed-size batches
- Memory info and flush for operational endpoints
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError

logger = structlog.get_logger(__name__)

DELETE_BATCH_SIZE = 50
SCAN_COUNT = 500

RedisFactory = Callable[[], "redis.Redis"]

# Errors after which the handle is discarded and rebuilt on the next call
_TERMINAL_ERRORS = (RedisConnectionError, ConnectionError, OSError)


class CacheBackendClient:
    """Shared Redis client with graceful degradation.

    The client is constructed explicitly and passed to the accessor and
    dispatcher. Without a URL or factory it is permanently unavailable.

    Example:
        client = CacheBackendClient("redis://localhost:6379/0")

        await client.set_with_ttl("board:P1:T1", b"[]", 300)
        data = await client.get("board:P1:T1")
        removed = await client.delete_pattern("board:P1:*")
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        connect_timeout: float = 10.0,
        socket_timeout: float = 5.0,
        reconnect_backoff: float = 5.0,
        redis_factory: RedisFactory | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the backend client.

        Args:
            redis_url: Redis connection URL.
            connect_timeout: Seconds allowed to establish a connection.
            socket_timeout: Seconds allowed for a single command.
            reconnect_backoff: Seconds to wait after a failed connect before
                trying again.
            redis_factory: Callable building a Redis client. Overrides
                ``redis_url``; used to inject fakes.
            enabled: Whether the cache is enabled at all.
        """
        self._redis_url = redis_url
        self._connect_timeout = connect_timeout
        self._socket_timeout = socket_timeout
        self._reconnect_backoff = reconnect_backoff
        self._factory = redis_factory
        if self._factory is None and redis_url:
            self._factory = self._from_url
        self.enabled = enabled
        self._client: redis.Redis | None = None
        self._connect_lock = asyncio.Lock()
        self._next_attempt_at = 0.0
        self.last_error: str | None = None

    def _from_url(self) -> "redis.Redis":
        return redis.from_url(
            self._redis_url,
            socket_connect_timeout=self._connect_timeout,
            socket_timeout=self._socket_timeout,
        )

    @property
    def configured(self) -> bool:
        """Whether a backend is configured and enabled."""
        return self.enabled and self._factory is not None

    @property
    def connected(self) -> bool:
        """Whether a live connection handle is currently held."""
        return self._client is not None

    async def connect(self) -> "redis.Redis | None":
        """Return the live connection, establishing one if needed.

        Returns:
            Redis client, or None if the backend is unavailable.
        """
        if self._client is not None:
            return self._client
        if not self.configured:
            return None
        if time.monotonic() < self._next_attempt_at:
            return None

        async with self._connect_lock:
            if self._client is not None:
                return self._client

            client: redis.Redis | None = None
            try:
                client = self._factory()  # type: ignore[misc]
                await client.ping()
            except Exception as e:
                self.last_error = str(e)
                self._next_attempt_at = time.monotonic() + self._reconnect_backoff
                logger.warning("cache_connect_failed", error=str(e))
                if client is not None:
                    await self._close_quietly(client)
                return None

            self._client = client
            self.last_error = None
            logger.info("cache_connected")
            return client

    async def _close_quietly(self, client: "redis.Redis") -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.debug("cache_close_error", error=str(e))

    async def _handle_error(
        self, operation: str, error: Exception, client: "redis.Redis", **context: Any
    ) -> None:
        """Log a backend failure and drop the failing handle on connection loss.

        Only the handle that raised is dropped. If another call has already
        replaced it, the newer handle is left alone.
        """
        self.last_error = str(error)
        logger.error(f"cache_{operation}_error", error=str(error), **context)
        if isinstance(error, _TERMINAL_ERRORS) and self._client is client:
            self._client = None
            await self._close_quietly(client)
            logger.warning("cache_connection_dropped", operation=operation)

    async def get(self, key: str) -> bytes | None:
        """Get raw bytes for a key.

        Args:
            key: Cache key.

        Returns:
            Stored bytes, or None on miss or unavailability.
        """
        client = await self.connect()
        if client is None:
            return None

        try:
            data = await client.get(key)
        except Exception as e:
            await self._handle_error("get", e, client, key=key)
            return None

        if isinstance(data, str):
            return data.encode("utf-8")
        return data

    async def set_with_ttl(self, key: str, data: bytes, ttl_seconds: int) -> bool:
        """Store bytes under a key with an expiry.

        Args:
            key: Cache key.
            data: Serialized payload.
            ttl_seconds: Lifetime enforced by Redis.

        Returns:
            True if the write was applied.
        """
        client = await self.connect()
        if client is None:
            return False

        try:
            await client.setex(key, ttl_seconds, data)
        except Exception as e:
            await self._handle_error("set", e, client, key=key)
            return False

        logger.debug("cache_set", key=key, ttl=ttl_seconds)
        return True

    async def delete(self, *keys: str) -> int | None:
        """Delete one or more keys.

        Args:
            keys: Cache keys.

        Returns:
            Number of keys removed, or None if the backend was unavailable.
        """
        if not keys:
            return 0
        client = await self.connect()
        if client is None:
            return None

        try:
            removed = int(await client.delete(*keys))
        except Exception as e:
            await self._handle_error("delete", e, client, keys=list(keys))
            return None

        logger.debug("cache_delete", keys=list(keys), removed=removed)
        return removed

    async def delete_pattern(self, pattern: str) -> int | None:
        """Delete every key matching a glob pattern.

        The pattern is resolved with SCAN and deleted in batches. A pattern
        matching nothing is a no-op.

        Args:
            pattern: Glob pattern (e.g., "board:P1:*").

        Returns:
            Number of keys removed, or None if the backend was unavailable.
        """
        client = await self.connect()
        if client is None:
            return None

        try:
            keys = [key async for key in client.scan_iter(match=pattern, count=SCAN_COUNT)]
            removed = 0
            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                batch = keys[start : start + DELETE_BATCH_SIZE]
                removed += int(await client.delete(*batch))
        except Exception as e:
            await self._handle_error("delete_pattern", e, client, pattern=pattern)
            return None

        if removed:
            logger.info("cache_delete_pattern", pattern=pattern, deleted_count=removed)
        return removed

    async def ping(self) -> bool:
        """Check backend connectivity. Not for use on the request path."""
        client = await self.connect()
        if client is None:
            return False

        try:
            return bool(await client.ping())
        except Exception as e:
            await self._handle_error("ping", e, client)
            return False

    async def memory_info(self) -> dict[str, Any] | None:
        """Summarize Redis memory usage.

        Returns:
            Memory figures and key count, or None if unavailable.
        """
        client = await self.connect()
        if client is None:
            return None

        try:
            info = await client.info("memory")
            keys = await client.dbsize()
        except Exception as e:
            await self._handle_error("info", e, client)
            return None

        return {
            "used_memory": int(info.get("used_memory", 0) or 0),
            "used_memory_human": info.get("used_memory_human", "unknown"),
            "maxmemory": int(info.get("maxmemory", 0) or 0),
            "keys": int(keys),
        }

    async def flush(self) -> bool:
        """Remove every key in the cache database.

        Returns:
            True if the flush was applied.
        """
        client = await self.connect()
        if client is None:
            return False

        try:
            await client.flushdb()
        except Exception as e:
            await self._handle_error("flush", e, client)
            return False

        logger.warning("cache_flushed")
        return True

    async def close(self) -> None:
        """Close the connection handle if one is open."""
        if self._client is not None:
            client, self._client = self._client, None
            await self._close_quietly(client)
            logger.info("cache_connection_closed")

"""In-process counters for cache behaviour."""

import asyncio
from dataclasses import dataclass, field
from typing import Any


@dataclass
class CacheMetrics:
    """Metrics for cache performance.

    Attributes:
        hits: Reads answered from the cache.
        misses: Reads that fell through to the loader.
        errors: Backend or decode failures seen by the accessor.
        loads: Loader invocations.
        rejected: Cached values discarded by a shape check.
        write_failures: Background cache writes that did not apply.
        invalidated_keys: Keys removed by invalidation.
        total_hit_latency_ms: Total latency for hits in milliseconds.
        total_load_latency_ms: Total loader latency in milliseconds.
    """

    hits: int = 0
    misses: int = 0
    errors: int = 0
    loads: int = 0
    rejected: int = 0
    write_failures: int = 0
    invalidated_keys: int = 0
    total_hit_latency_ms: float = 0.0
    total_load_latency_ms: float = 0.0
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def total_requests(self) -> int:
        """Total number of cache reads."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        if self.total_requests == 0:
            return 0.0
        return (self.hits / self.total_requests) * 100

    @property
    def avg_hit_latency_ms(self) -> float:
        """Average latency for cache hits."""
        if self.hits == 0:
            return 0.0
        return self.total_hit_latency_ms / self.hits

    @property
    def avg_load_latency_ms(self) -> float:
        """Average loader latency."""
        if self.loads == 0:
            return 0.0
        return self.total_load_latency_ms / self.loads

    async def record_hit(self, latency_ms: float) -> None:
        """Record a cache hit."""
        async with self._lock:
            self.hits += 1
            self.total_hit_latency_ms += latency_ms

    async def record_miss(self) -> None:
        """Record a cache miss."""
        async with self._lock:
            self.misses += 1

    async def record_load(self, latency_ms: float) -> None:
        """Record a completed loader call."""
        async with self._lock:
            self.loads += 1
            self.total_load_latency_ms += latency_ms

    async def record_error(self) -> None:
        """Record a cache error."""
        async with self._lock:
            self.errors += 1

    async def record_rejected(self) -> None:
        """Record a cached value that failed its shape check."""
        async with self._lock:
            self.rejected += 1

    async def record_write_failure(self) -> None:
        """Record a background write that did not apply."""
        async with self._lock:
            self.write_failures += 1

    async def record_invalidated(self, count: int) -> None:
        """Record keys removed by invalidation."""
        async with self._lock:
            self.invalidated_keys += count

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "loads": self.loads,
            "rejected": self.rejected,
            "write_failures": self.write_failures,
            "invalidated_keys": self.invalidated_keys,
            "total_requests": self.total_requests,
            "hit_rate": round(self.hit_rate, 2),
            "avg_hit_latency_ms": round(self.avg_hit_latency_ms, 2),
            "avg_load_latency_ms": round(self.avg_load_latency_ms, 2),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self.hits = 0
        self.misses = 0
        self.errors = 0
        self.loads = 0
        self.rejected = 0
        self.write_failures = 0
        self.invalidated_keys = 0
        self.total_hit_latency_ms = 0.0
        self.total_load_latency_ms = 0.0

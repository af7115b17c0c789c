"""Cache health reporting for monitoring and orchestration.

This module provides:
- check_cache_health: the cache backend's {status, message} report
- CacheHealthReporter: liveness and readiness payloads built on that report

Health checks are for operational visibility only. Request handlers never
consult them; the cache accessor simply tries the backend and falls back.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from src.cache.client import CacheBackendClient

logger = structlog.get_logger(__name__)

CACHE_CHECK_TIMEOUT = 1.0


class CacheHealth(Enum):
    """Status values reported for the cache backend."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


class Readiness(Enum):
    """Overall service readiness."""

    READY = "ready"
    DEGRADED = "degraded"
    NOT_READY = "not_ready"


async def check_cache_health(client: CacheBackendClient) -> dict[str, str]:
    """Report cache backend connectivity.

    Args:
        client: Backend client to check.

    Returns:
        ``{"status": "healthy"|"degraded", "message": ...}``.
    """
    if not client.configured:
        return {
            "status": CacheHealth.DEGRADED.value,
            "message": "Cache backend not configured; serving from system of record",
        }

    if await client.ping():
        return {"status": CacheHealth.HEALTHY.value, "message": "Cache backend is reachable"}

    reason = client.last_error or "ping failed"
    return {
        "status": CacheHealth.DEGRADED.value,
        "message": f"Cache backend unavailable: {reason}",
    }


@dataclass
class ReadinessReport:
    """Result of a readiness check.

    Attributes:
        status: Overall readiness.
        cache: Cache health report with the check latency.
        version: Service version.
        timestamp: When the check was performed.
    """

    status: Readiness
    cache: dict[str, Any]
    version: str = "1.0.0"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "checks": {"cache": self.cache},
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
        }


class CacheHealthReporter:
    """Liveness and readiness for a service whose only dependency is the cache.

    The service keeps working without the cache, so an unreachable or slow
    backend makes the service degraded, never not-ready.

    Example:
        reporter = CacheHealthReporter(layer.client, version=app.version)
        report = await reporter.readiness()
    """

    def __init__(
        self,
        client: CacheBackendClient,
        version: str = "1.0.0",
        timeout: float = CACHE_CHECK_TIMEOUT,
    ) -> None:
        self.client = client
        self.version = version
        self.timeout = timeout

    async def liveness(self) -> dict[str, Any]:
        """Basic liveness check. Does not touch the cache."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def readiness(self) -> ReadinessReport:
        """Check the cache backend within the timeout."""
        start = time.monotonic()
        try:
            report = await asyncio.wait_for(check_cache_health(self.client), self.timeout)
        except TimeoutError:
            report = {
                "status": CacheHealth.DEGRADED.value,
                "message": f"Cache health check timed out after {self.timeout}s",
            }
        latency_ms = (time.monotonic() - start) * 1000

        if report["status"] == CacheHealth.HEALTHY.value:
            status = Readiness.READY
        else:
            status = Readiness.DEGRADED

        logger.info("health_check_completed", status=status.value, cache=report["status"])
        return ReadinessReport(
            status=status,
            cache={**report, "latency_ms": round(latency_ms, 2)},
            version=self.version,
        )

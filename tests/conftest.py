"""Shared fixtures for cache tests."""

import fakeredis
import pytest

from src.cache.accessor import CacheAccessor
from src.cache.client import CacheBackendClient
from src.cache.invalidation import InvalidationDispatcher
from src.cache.metrics import CacheMetrics
from src.cache.writes import PendingWrites


@pytest.fixture
def fake_redis() -> fakeredis.FakeAsyncRedis:
    """In-memory Redis shared by everything built from one test."""
    return fakeredis.FakeAsyncRedis()


@pytest.fixture
def cache_client(fake_redis: fakeredis.FakeAsyncRedis) -> CacheBackendClient:
    """Backend client wired to the fake Redis."""
    return CacheBackendClient(redis_factory=lambda: fake_redis, reconnect_backoff=0)


@pytest.fixture
def metrics() -> CacheMetrics:
    """Metrics shared by accessor and dispatcher."""
    return CacheMetrics()


@pytest.fixture
def pending() -> PendingWrites:
    """Background write registry shared by accessor and dispatcher."""
    return PendingWrites()


@pytest.fixture
def accessor(
    cache_client: CacheBackendClient, metrics: CacheMetrics, pending: PendingWrites
) -> CacheAccessor:
    """Accessor over the fake backend."""
    return CacheAccessor(cache_client, metrics=metrics, pending=pending)


@pytest.fixture
def dispatcher(
    cache_client: CacheBackendClient, metrics: CacheMetrics, pending: PendingWrites
) -> InvalidationDispatcher:
    """Dispatcher over the fake backend."""
    return InvalidationDispatcher(cache_client, metrics=metrics, pending=pending)


@pytest.fixture
def unavailable_client() -> CacheBackendClient:
    """Backend client with no Redis configured."""
    return CacheBackendClient(None)

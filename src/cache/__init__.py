"""Read-through cache layer for dashboard and kanban read views.

This module contains:
- CacheBackendClient for the shared Redis connection
- CacheAccessor for cache-aside reads with per-resource TTLs
- InvalidationDispatcher for write-triggered invalidation
- PendingWrites for ordering background writes against invalidation
- Key schema, TTL policy table and the compact serializer
"""

from src.cache.accessor import (
    CacheAccessor,
    has_categories_with_options,
    is_cacheable,
    is_complete_dashboard,
)
from src.cache.client import CacheBackendClient
from src.cache.errors import (
    CacheDecodeError,
    CacheError,
    InvalidKeyPartError,
    UnsafePatternError,
)
from src.cache.invalidation import (
    InvalidationDispatcher,
    InvalidationTarget,
    Mutation,
    targets_for,
)
from src.cache.keys import (
    ALL_DATES,
    NO_TEAM,
    RESOURCE_DESCRIPTORS,
    ResourceDescriptor,
    ResourceType,
    build_key,
    build_pattern,
)
from src.cache.layer import CacheLayer, create_cache_layer
from src.cache.metrics import CacheMetrics
from src.cache.serializer import decode, encode
from src.cache.writes import PendingWrites

__all__ = [
    # Core classes
    "CacheAccessor",
    "CacheBackendClient",
    "CacheLayer",
    "CacheMetrics",
    "InvalidationDispatcher",
    "InvalidationTarget",
    "Mutation",
    "PendingWrites",
    # Key schema
    "ALL_DATES",
    "NO_TEAM",
    "RESOURCE_DESCRIPTORS",
    "ResourceDescriptor",
    "ResourceType",
    "build_key",
    "build_pattern",
    # Errors
    "CacheDecodeError",
    "CacheError",
    "InvalidKeyPartError",
    "UnsafePatternError",
    # Utilities
    "create_cache_layer",
    "decode",
    "encode",
    "has_categories_with_options",
    "is_cacheable",
    "is_complete_dashboard",
    "targets_for",
]

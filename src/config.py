"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults. Settings are read once at process start.
"""

import os
from dataclasses import dataclass, field

from src.cache.keys import RESOURCE_DESCRIPTORS, ResourceType


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float from environment variable, falling back on bad input."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _ttl_env_name(resource: ResourceType) -> str:
    return "CACHE_TTL_" + resource.name


def _get_ttl_overrides() -> dict[ResourceType, int]:
    """Collect per-resource TTL overrides such as ``CACHE_TTL_BOARD=120``."""
    overrides: dict[ResourceType, int] = {}
    for resource in RESOURCE_DESCRIPTORS:
        value = os.getenv(_ttl_env_name(resource))
        if not value:
            continue
        try:
            ttl = int(value)
        except ValueError:
            continue
        if ttl > 0:
            overrides[resource] = ttl
    return overrides


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        REDIS_URL: Redis connection URL. When unset the cache is always
            unavailable and every read goes to the system of record.
        CACHE_ENABLED: Master switch for the cache layer.
        CACHE_CONNECT_TIMEOUT: Seconds allowed to establish a connection.
        CACHE_SOCKET_TIMEOUT: Seconds allowed for a single command.
        CACHE_TTL_OVERRIDES: Per-resource TTLs replacing the defaults.
        LOG_LEVEL: Logging level.
        LOG_FORMAT: ``console`` or ``json``.
    """

    REDIS_URL: str | None = None
    CACHE_ENABLED: bool = True
    CACHE_CONNECT_TIMEOUT: float = 10.0
    CACHE_SOCKET_TIMEOUT: float = 5.0
    CACHE_TTL_OVERRIDES: dict[ResourceType, int] = field(default_factory=dict)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        ``STORAGE_REDIS_URL`` is accepted as a fallback for ``REDIS_URL``.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            REDIS_URL=os.getenv("REDIS_URL") or os.getenv("STORAGE_REDIS_URL") or None,
            CACHE_ENABLED=_get_bool_env("CACHE_ENABLED", default=True),
            CACHE_CONNECT_TIMEOUT=_get_float_env("CACHE_CONNECT_TIMEOUT", 10.0),
            CACHE_SOCKET_TIMEOUT=_get_float_env("CACHE_SOCKET_TIMEOUT", 5.0),
            CACHE_TTL_OVERRIDES=_get_ttl_overrides(),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_FORMAT=os.getenv("LOG_FORMAT", "console"),
        )

    def get_ttl(self, resource: ResourceType) -> int:
        """Get the effective TTL for a resource type."""
        override = self.CACHE_TTL_OVERRIDES.get(resource)
        if override is not None:
            return override
        return RESOURCE_DESCRIPTORS[resource].ttl_seconds


# Global settings instance
settings = Settings.from_env()

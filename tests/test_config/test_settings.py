"""Tests for environment-driven settings."""

import pytest

from src.cache.keys import ResourceType
from src.config import Settings

_ENV_VARS = (
    "REDIS_URL",
    "STORAGE_REDIS_URL",
    "CACHE_ENABLED",
    "CACHE_CONNECT_TIMEOUT",
    "CACHE_SOCKET_TIMEOUT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    *(f"CACHE_TTL_{resource.name}" for resource in ResourceType),
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from an empty environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self) -> None:
        """Without environment the cache is unconfigured but enabled."""
        settings = Settings.from_env()
        assert settings.REDIS_URL is None
        assert settings.CACHE_ENABLED is True
        assert settings.CACHE_CONNECT_TIMEOUT == 10.0
        assert settings.CACHE_SOCKET_TIMEOUT == 5.0
        assert settings.CACHE_TTL_OVERRIDES == {}
        assert settings.LOG_LEVEL == "INFO"

    def test_redis_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """REDIS_URL is read directly."""
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        assert Settings.from_env().REDIS_URL == "redis://cache:6379/0"

    def test_storage_redis_url_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """STORAGE_REDIS_URL is used when REDIS_URL is absent."""
        monkeypatch.setenv("STORAGE_REDIS_URL", "redis://storage:6379/1")
        assert Settings.from_env().REDIS_URL == "redis://storage:6379/1"

    def test_redis_url_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """REDIS_URL takes precedence over the fallback."""
        monkeypatch.setenv("REDIS_URL", "redis://primary:6379/0")
        monkeypatch.setenv("STORAGE_REDIS_URL", "redis://storage:6379/1")
        assert Settings.from_env().REDIS_URL == "redis://primary:6379/0"

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", "FALSE"])
    def test_cache_disabled(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        """The master switch accepts common false spellings."""
        monkeypatch.setenv("CACHE_ENABLED", value)
        assert Settings.from_env().CACHE_ENABLED is False

    def test_bad_timeout_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unparseable numbers keep the default."""
        monkeypatch.setenv("CACHE_SOCKET_TIMEOUT", "soon")
        monkeypatch.setenv("CACHE_CONNECT_TIMEOUT", "2.5")
        settings = Settings.from_env()
        assert settings.CACHE_SOCKET_TIMEOUT == 5.0
        assert settings.CACHE_CONNECT_TIMEOUT == 2.5

    def test_ttl_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Per-resource TTL overrides are collected."""
        monkeypatch.setenv("CACHE_TTL_BOARD", "120")
        monkeypatch.setenv("CACHE_TTL_USER_PROJECTS", "60")
        monkeypatch.setenv("CACHE_TTL_DASHBOARD", "-5")
        monkeypatch.setenv("CACHE_TTL_CATEGORIES", "ten")

        overrides = Settings.from_env().CACHE_TTL_OVERRIDES

        assert overrides == {ResourceType.BOARD: 120, ResourceType.USER_PROJECTS: 60}


class TestGetTTL:
    """Tests for effective TTL lookup."""

    def test_default_ttl(self) -> None:
        """Resources without an override use the policy table."""
        settings = Settings()
        assert settings.get_ttl(ResourceType.BOARD) == 300
        assert settings.get_ttl(ResourceType.USER_TEAMS) == 900

    def test_override_ttl(self) -> None:
        """Overrides replace the default."""
        settings = Settings(CACHE_TTL_OVERRIDES={ResourceType.BOARD: 30})
        assert settings.get_ttl(ResourceType.BOARD) == 30
        assert settings.get_ttl(ResourceType.CATEGORIES) == 600

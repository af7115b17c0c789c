"""FastAPI routes for the dashboard cache service.

This module contains:
- Cache status, statistics and invalidation endpoints
- Health check endpoints
- Application factory
"""

from src.api.health import (
    CacheHealth,
    CacheHealthReporter,
    Readiness,
    ReadinessReport,
    check_cache_health,
)
from src.api.routes import ErrorResponse, app, create_app

__all__ = [
    # Health reporting
    "CacheHealth",
    "CacheHealthReporter",
    "Readiness",
    "ReadinessReport",
    "check_cache_health",
    # Response models
    "ErrorResponse",
    # App factory and instance
    "app",
    "create_app",
]

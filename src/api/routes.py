"""FastAPI application for the dashboard cache service.

This module provides:
- Application factory with lifespan-managed cache layer
- Health check endpoints (liveness and readiness)
- Cache operations routes
- Error handling
"""

import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.health import CacheHealthReporter, Readiness, check_cache_health
from src.cache.layer import CacheLayer, create_cache_layer
from src.config import Settings
from src.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
)

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(default=None, description="Detailed error information")


# ============================================================================
# Application Setup
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    configure_logging(settings)
    logger.info("application_starting")

    owns_cache = getattr(app.state, "cache", None) is None
    if owns_cache:
        app.state.cache = create_cache_layer(settings)
    layer: CacheLayer = app.state.cache

    if getattr(app.state, "health", None) is None:
        app.state.health = CacheHealthReporter(layer.client, version=app.version)

    yield

    logger.info("application_shutting_down")
    if owns_cache:
        await layer.close()


OPENAPI_TAGS = [
    {
        "name": "Cache",
        "description": "Cache backend status, statistics and administrative invalidation.",
    },
    {
        "name": "Health",
        "description": "Health check endpoints for monitoring service status and readiness. "
        "Compatible with Kubernetes liveness and readiness checks.",
    },
]


def create_app(
    settings: Settings | None = None,
    cache: CacheLayer | None = None,
    title: str = "Dashboard Cache API",
    version: str = "1.0.0",
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (read from the environment if omitted).
        cache: Pre-built cache layer. When omitted one is created from
            settings at startup and closed at shutdown.
        title: API title.
        version: API version.
        cors_origins: Allowed CORS origins.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title=title,
        version=version,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.settings = settings or Settings.from_env()
    app.state.cache = cache
    app.state.health = None

    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        bind_request_context(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["x-request-id"] = request_id
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
                detail=None,
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception  # noqa: ARG001
    ) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if app.debug else None,
            ).model_dump(),
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """
    from src.api.cache import router as cache_router

    app.include_router(cache_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check."""
        reporter: CacheHealthReporter | None = app.state.health
        if reporter:
            return await reporter.liveness()
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    @app.get("/health/live", tags=["Health"])
    async def liveness() -> dict[str, Any]:
        """Kubernetes-style liveness check. Alias for /health."""
        return await health()

    @app.get("/health/ready", tags=["Health"])
    async def readiness() -> Any:
        """Readiness check.

        A degraded cache still counts as ready; reads fall back to the
        system of record. Only a service that has not finished starting is
        not ready.
        """
        reporter: CacheHealthReporter | None = app.state.health
        if reporter is None:
            return JSONResponse(
                content={
                    "status": Readiness.NOT_READY.value,
                    "checks": {},
                    "timestamp": datetime.now(UTC).isoformat(),
                },
                status_code=503,
            )
        result = await reporter.readiness()
        return JSONResponse(content=result.to_dict(), status_code=200)

    @app.get("/health/cache", tags=["Health"])
    async def cache_health() -> dict[str, str]:
        """Cache backend status as ``{status, message}``."""
        layer: CacheLayer | None = app.state.cache
        if layer is None:
            raise HTTPException(status_code=503, detail="Cache layer not initialized")
        return await check_cache_health(layer.client)


app = create_app()

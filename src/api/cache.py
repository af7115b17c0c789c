"""API routes for operating the cache layer.

This module provides endpoints for:
- Cache backend status and memory usage
- Hit/miss statistics
- Forced invalidation of a resource family, project, user or team
- Flushing the cache database
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from src.api.health import CacheHealth, check_cache_health
from src.cache.errors import InvalidKeyPartError, UnsafePatternError
from src.cache.keys import ResourceType
from src.cache.layer import CacheLayer

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])

MEMORY_CRITICAL_PERCENT = 90.0
MEMORY_HIGH_PERCENT = 80.0


# ============================================================================
# Request/Response Models
# ============================================================================


class HealthReport(BaseModel):
    """Cache backend health."""

    status: str = Field(..., description="healthy or degraded")
    message: str


class StatusResponse(BaseModel):
    """Cache backend status with memory usage."""

    health: HealthReport
    memory: dict[str, Any] | None = None
    timestamp: str


class InvalidateRequest(BaseModel):
    """Request to force-clear cached views.

    Either ``resource`` (with optional leading ``scope`` parts) or a raw
    ``pattern`` under a known prefix must be given.
    """

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"resource": "board", "scope": ["3f1c0a52-7d3e-4b8e-9a55-0c2a9f6b1d11"]},
                {"pattern": "user-projects:*"},
            ]
        }
    }

    resource: str | None = Field(default=None, description="Resource type, e.g. board")
    scope: list[str] = Field(
        default_factory=list, description="Leading key parts, e.g. [project_id]"
    )
    pattern: str | None = Field(default=None, description="Raw glob pattern")

    @model_validator(mode="after")
    def _one_target(self) -> "InvalidateRequest":
        if (self.resource is None) == (self.pattern is None):
            raise ValueError("Provide exactly one of 'resource' or 'pattern'")
        return self


class InvalidateResponse(BaseModel):
    """Result of an invalidation request."""

    success: bool
    target: str
    removed: int


class FlushResponse(BaseModel):
    """Result of a flush request."""

    success: bool
    message: str
    timestamp: str


# ============================================================================
# Helper Functions
# ============================================================================


def get_cache_layer(request: Request) -> CacheLayer:
    """Resolve the process-wide cache layer from application state."""
    layer: CacheLayer | None = getattr(request.app.state, "cache", None)
    if layer is None:
        raise HTTPException(status_code=503, detail="Cache layer not initialized")
    return layer


def _now() -> str:
    return datetime.now(UTC).isoformat()


def summarize_memory(memory: dict[str, Any] | None) -> dict[str, Any]:
    """Turn raw Redis memory figures into a usage summary."""
    if not memory:
        return {"used_mb": None, "max_mb": None, "percentage": None, "status": "unknown"}

    used_mb = memory.get("used_memory", 0) / 1024 / 1024
    max_bytes = memory.get("maxmemory", 0)
    max_mb = max_bytes / 1024 / 1024 if max_bytes else None
    percentage = (used_mb / max_mb) * 100 if max_mb else None

    status = "healthy"
    if percentage is not None and percentage > MEMORY_CRITICAL_PERCENT:
        status = "warning"
    elif percentage is not None and percentage > MEMORY_HIGH_PERCENT:
        status = "high"

    return {
        "used_mb": round(used_mb, 2),
        "max_mb": round(max_mb, 2) if max_mb else None,
        "percentage": round(percentage, 1) if percentage is not None else None,
        "status": status,
        "keys": memory.get("keys", 0),
    }


def recommendations_for(summary: dict[str, Any]) -> list[str]:
    """Operational hints derived from a memory summary."""
    percentage = summary.get("percentage")
    if percentage is None:
        return []
    if percentage > MEMORY_CRITICAL_PERCENT:
        return ["Memory usage critical - consider a larger cache instance"]
    if percentage > MEMORY_HIGH_PERCENT:
        return ["Memory usage high - review cache TTLs and eviction policy"]
    return []


def _parse_resource(value: str) -> ResourceType:
    try:
        return ResourceType(value)
    except ValueError:
        known = ", ".join(r.value for r in ResourceType)
        raise HTTPException(
            status_code=400, detail=f"Unknown resource '{value}'. Known: {known}"
        ) from None


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/status", response_model=StatusResponse)
async def cache_status(layer: CacheLayer = Depends(get_cache_layer)) -> StatusResponse:
    """Report cache backend connectivity and memory usage."""
    health = await check_cache_health(layer.client)
    memory = None
    if health["status"] == CacheHealth.HEALTHY.value:
        memory = await layer.client.memory_info()

    logger.debug("cache_status_checked", status=health["status"])
    return StatusResponse(health=HealthReport(**health), memory=memory, timestamp=_now())


@router.get("/stats")
async def cache_stats(layer: CacheLayer = Depends(get_cache_layer)) -> dict[str, Any]:
    """Hit/miss statistics plus memory usage of the backend."""
    health = await check_cache_health(layer.client)
    memory = None
    if health["status"] == CacheHealth.HEALTHY.value:
        memory = await layer.client.memory_info()
    summary = summarize_memory(memory)

    return {
        "timestamp": _now(),
        "status": health["status"],
        "cache": layer.metrics.to_dict(),
        "pending_writes": layer.accessor.pending_writes,
        "memory": summary,
        "recommendations": recommendations_for(summary),
    }


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate(
    request: InvalidateRequest,
    layer: CacheLayer = Depends(get_cache_layer),
) -> InvalidateResponse:
    """Force-clear a resource family or a raw pattern."""
    try:
        if request.pattern is not None:
            removed = await layer.dispatcher.invalidate_pattern(request.pattern)
            target = request.pattern
        else:
            resource = _parse_resource(request.resource or "")
            removed = await layer.dispatcher.invalidate(resource, *request.scope)
            target = ":".join([resource.value, *request.scope])
    except (UnsafePatternError, InvalidKeyPartError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    logger.info("cache_admin_invalidate", target=target, removed=removed)
    return InvalidateResponse(success=True, target=target, removed=removed)


@router.post("/invalidate/project/{project_id}", response_model=InvalidateResponse)
async def invalidate_project(
    project_id: str,
    layer: CacheLayer = Depends(get_cache_layer),
) -> InvalidateResponse:
    """Drop every cached view scoped to a project."""
    try:
        removed = await layer.dispatcher.invalidate_project(project_id)
    except InvalidKeyPartError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return InvalidateResponse(success=True, target=f"project:{project_id}", removed=removed)


@router.post("/invalidate/user/{user_id}", response_model=InvalidateResponse)
async def invalidate_user(
    user_id: str,
    layer: CacheLayer = Depends(get_cache_layer),
) -> InvalidateResponse:
    """Drop every cached view scoped to a user."""
    try:
        removed = await layer.dispatcher.invalidate_user(user_id)
    except InvalidKeyPartError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return InvalidateResponse(success=True, target=f"user:{user_id}", removed=removed)


@router.post("/invalidate/team/{team_id}", response_model=InvalidateResponse)
async def invalidate_team(
    team_id: str,
    layer: CacheLayer = Depends(get_cache_layer),
) -> InvalidateResponse:
    """Drop every cached view scoped to a team."""
    try:
        removed = await layer.dispatcher.invalidate_team(team_id)
    except InvalidKeyPartError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return InvalidateResponse(success=True, target=f"team:{team_id}", removed=removed)


@router.post("/flush", response_model=FlushResponse)
async def flush(layer: CacheLayer = Depends(get_cache_layer)) -> Any:
    """Remove every cached view."""
    applied = await layer.dispatcher.flush_all()
    if applied:
        return FlushResponse(success=True, message="Cache flushed", timestamp=_now())

    return JSONResponse(
        status_code=503,
        content=FlushResponse(
            success=False, message="Cache backend unavailable", timestamp=_now()
        ).model_dump(),
    )

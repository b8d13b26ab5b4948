"""Health check endpoints for liveness and readiness probes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from querycache.api.dependencies import QueryCacheDep
from querycache.schemas.health import (
    HealthResponse,
    PoolStatsResponse,
    ReadinessResponse,
)

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return simple ok status for liveness."""
    return HealthResponse()


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Query cache not started or Redis unavailable", "model": ReadinessResponse}},
)
def readiness_check(query_cache: QueryCacheDep) -> ReadinessResponse | JSONResponse:
    """Return 200 when Redis is ready or disabled; 503 while it is unavailable.

    Reads keep working against the database while Redis is down, but a
    replica without its cache is taken out of rotation until it reconnects.
    """
    if query_cache is None:
        body = ReadinessResponse(status="not_ready", cache="unavailable")
        return JSONResponse(status_code=503, content=body.model_dump())

    stats = query_cache.pool_stats()
    pool = PoolStatsResponse(
        total=stats.total, active=stats.active, free=stats.free, queued=stats.queued
    )
    if query_cache.cache is None or not query_cache.cache.enabled:
        return ReadinessResponse(cache="disabled", pool=pool)
    if query_cache.is_healthy():
        return ReadinessResponse(cache="ready", pool=pool)
    body = ReadinessResponse(status="not_ready", cache="unavailable", pool=pool)
    return JSONResponse(status_code=503, content=body.model_dump())

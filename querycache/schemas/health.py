"""Health check API schemas."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health (liveness)."""

    status: str = Field(default="ok", description="Service status")


class PoolStatsResponse(BaseModel):
    """Backing-store pool occupancy."""

    total: int
    active: int
    free: int
    queued: int


class ReadinessResponse(BaseModel):
    """Response for GET /health/ready."""

    status: str = Field(default="ok", description="Readiness status")
    cache: str = Field(..., description="ready, disabled or unavailable")
    pool: PoolStatsResponse | None = None

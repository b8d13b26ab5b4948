"""HTTP surface: health endpoints for services embedding the query cache."""

from fastapi import APIRouter

from querycache.api import health

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])

__all__ = ["api_router"]

"""Startup and shutdown wiring for a QueryCache.

Single place that builds the backing-store pool, the cache service and
the orchestrator from settings, and tears them down again. Used directly
by scripts and workers, and through create_lifespan() by the FastAPI app.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from querycache.application.services.query_cache import QueryCache
from querycache.core.config import Settings, get_settings
from querycache.infrastructure.cache.redis_cache import CacheService
from querycache.infrastructure.persistence.database import BackingStore

logger = logging.getLogger(__name__)


async def start_query_cache(settings: Settings | None = None) -> QueryCache:
    """Build a QueryCache and connect its cache store; caller must close() it.

    Redis being unreachable does not fail startup: the cache service
    starts degraded and reconnects in the background.
    """
    settings = settings or get_settings()
    store = BackingStore(settings=settings)
    cache: CacheService | None = None
    if settings.redis_enabled:
        cache = CacheService(settings=settings)
        await cache.connect()
    else:
        logger.info("Redis disabled, queries go straight to the database")
    query_cache = QueryCache(store, cache, settings.cache_features)
    logger.info(
        "Query cache ready: database=%s@%s:%s cache=%s",
        settings.db_name,
        settings.db_host,
        settings.db_port,
        "enabled" if cache is not None else "disabled",
    )
    return query_cache


@asynccontextmanager
async def build_query_cache(settings: Settings | None = None) -> AsyncIterator[QueryCache]:
    """Yield a started QueryCache and close it on exit."""
    query_cache = await start_query_cache(settings)
    try:
        yield query_cache
    finally:
        await query_cache.close()


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """FastAPI lifespan: expose the QueryCache as app.state.query_cache."""
    async with build_query_cache() as query_cache:
        app.state.query_cache = query_cache
        yield
        app.state.query_cache = None
    logger.info("Query cache closed")

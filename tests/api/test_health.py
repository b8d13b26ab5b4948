"""Health endpoints over ASGI (httpx ASGITransport)."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from querycache.api import api_router
from querycache.application.services.query_cache import QueryCache
from querycache.core.config import get_settings
from querycache.core.exception_handlers import register_exception_handlers
from querycache.domain.exceptions import CacheKeyRequiredException
from querycache.infrastructure.cache.redis_cache import CacheService
from querycache.main import create_app
from tests.conftest import FakeRedis, FakeStore, make_settings


def _app(query_cache: QueryCache | None) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(api_router)
    app.state.query_cache = query_cache
    return app


async def _get(app: FastAPI, path: str):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path)


async def test_liveness_always_ok() -> None:
    response = await _get(_app(None), "/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_ready_when_cache_connected(query_cache: QueryCache) -> None:
    response = await _get(_app(query_cache), "/health/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["cache"] == "ready"
    assert body["pool"] == {"total": 10, "active": 0, "free": 10, "queued": 0}


async def test_ready_when_cache_disabled(fake_store: FakeStore) -> None:
    response = await _get(_app(QueryCache(fake_store, None)), "/health/ready")
    assert response.status_code == 200
    assert response.json()["cache"] == "disabled"


async def test_not_ready_while_redis_down(fake_store: FakeStore) -> None:
    fake = FakeRedis()
    fake.down = True
    cache = CacheService(redis_client=fake, settings=make_settings(redis_wait_timeout=0.02))
    await cache.connect()
    try:
        response = await _get(_app(QueryCache(fake_store, cache)), "/health/ready")
    finally:
        await cache.disconnect()
    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"
    assert response.json()["cache"] == "unavailable"


async def test_not_ready_before_startup() -> None:
    response = await _get(_app(None), "/health/ready")
    assert response.status_code == 503


async def test_query_cache_errors_map_to_http_status() -> None:
    app = _app(None)

    @app.get("/boom")
    async def boom() -> None:
        raise CacheKeyRequiredException()

    response = await _get(app, "/boom")
    assert response.status_code == 400
    assert response.json()["error"] == "CACHE_KEY_REQUIRED"


async def test_create_app_wires_health(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "localhost")
    monkeypatch.setenv("DB_USERNAME", "root")
    monkeypatch.setenv("DB_NAME", "app")
    monkeypatch.setenv("REDIS_ENABLED", "false")
    get_settings.cache_clear()
    try:
        app = create_app()
        response = await _get(app, "/health")
    finally:
        get_settings.cache_clear()
    assert response.status_code == 200
    assert app.title == "querycache"

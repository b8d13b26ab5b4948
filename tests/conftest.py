"""Pytest configuration and fixtures for querycache.

Unit tests run against in-memory doubles: FakeRedis stands in for the
redis.asyncio client and FakeStore for the MySQL pool. Tests that need a
real MySQL and Redis are marked requires_db and skipped by default; run
them with: pytest -m requires_db.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from sqlalchemy.exc import InvalidRequestError

from querycache.application.services.query_cache import QueryCache
from querycache.core.config import Settings
from querycache.domain.value_objects import CacheFeatures, PoolStats, WriteResult
from querycache.infrastructure.cache.redis_cache import CacheService
from querycache.infrastructure.persistence.retry import RetryExecutor


def make_settings(**overrides: Any) -> Settings:
    """Settings for tests: required fields set, short timeouts, no .env file."""
    values: dict[str, Any] = {
        "db_host": "localhost",
        "db_username": "root",
        "db_name": "app",
        "redis_enabled": True,
        "redis_server": "localhost",
        "redis_vhost": None,
        "redis_wait_timeout": 0.2,
        "redis_reconnect_base_delay": 0.01,
        "redis_reconnect_max_delay": 0.05,
        "redis_reconnect_jitter": 0.0,
        "redis_health_check_interval": 30.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis used by CacheService.

    Set down=True to make every call raise redis.ConnectionError.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.down = False
        self.delete_calls: list[tuple[str, ...]] = []
        self.scan_patterns: list[str] = []
        self.closed = False

    def _check(self) -> None:
        if self.down:
            raise redis.ConnectionError("Connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, name: str) -> str | None:
        self._check()
        return self.store.get(name)

    async def setex(self, name: str, time: int, value: str) -> bool:
        self._check()
        self.store[name] = value
        self.ttls[name] = time
        return True

    async def exists(self, *names: str) -> int:
        self._check()
        return sum(1 for name in names if name in self.store)

    async def delete(self, *names: str) -> int:
        self._check()
        self.delete_calls.append(names)
        removed = 0
        for name in names:
            if self.store.pop(name, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        self._check()
        self.scan_patterns.append(match)
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        self.closed = True


class FakeConnection:
    """StoreConnection double; execute() is answered by the owning FakeStore.

    Like SQLAlchemy's autobegin, any statement on a non-autocommit connection
    opens a transaction, after which begin() raises InvalidRequestError.
    """

    def __init__(self, store: FakeStore, autocommit: bool) -> None:
        self.store = store
        self.autocommit = autocommit
        self.in_transaction = False
        self.execute = AsyncMock(side_effect=self._execute)
        self.begin = AsyncMock(side_effect=self._begin)
        self.commit = AsyncMock(side_effect=self._end)
        self.rollback = AsyncMock(side_effect=self._end)
        self.use_database = AsyncMock(side_effect=self._use_database)
        self.release = AsyncMock(side_effect=self._release)

    def _autobegin(self) -> None:
        if not self.autocommit:
            self.in_transaction = True

    async def _execute(self, statement: str, parameters: Any = None) -> Any:
        self._autobegin()
        return await self.store.respond(statement, parameters)

    async def _use_database(self, database: str) -> None:
        self._autobegin()

    async def _begin(self) -> None:
        if self.in_transaction:
            raise InvalidRequestError("connection already has a transaction via autobegin")
        self.in_transaction = True

    async def _end(self) -> None:
        self.in_transaction = False

    async def _release(self) -> None:
        self.store.released += 1


class FakeStore:
    """BackingStore double recording acquire/release and executed statements.

    handler(statement, parameters) returns rows, a WriteResult, or an
    exception instance to raise.
    """

    def __init__(self) -> None:
        self.handler: Callable[[str, Any], Any] = lambda statement, parameters: []
        self.connections: list[FakeConnection] = []
        self.executed: list[tuple[str, Any]] = []
        self.acquired = 0
        self.released = 0
        self.disposed = False

    async def respond(self, statement: str, parameters: Any = None) -> Any:
        self.executed.append((statement, parameters))
        result = self.handler(statement, parameters)
        if isinstance(result, BaseException):
            raise result
        return result

    async def acquire(self, *, autocommit: bool = True) -> FakeConnection:
        self.acquired += 1
        connection = FakeConnection(self, autocommit)
        self.connections.append(connection)
        return connection

    @asynccontextmanager
    async def connection(self, target: str | None = None, *, autocommit: bool = True):
        connection = await self.acquire(autocommit=autocommit)
        try:
            if target:
                await connection.use_database(target)
            yield connection
        finally:
            await connection.release()

    def pool_stats(self) -> PoolStats:
        active = self.acquired - self.released
        return PoolStats(total=10, active=active, free=10 - active, queued=0)

    async def dispose(self) -> None:
        self.disposed = True


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
async def cache_service(fake_redis: FakeRedis, settings: Settings):
    """CacheService connected to FakeRedis; disconnected after the test."""
    service = CacheService(redis_client=fake_redis, settings=settings)
    await service.connect()
    yield service
    await service.disconnect()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def query_cache(fake_store: FakeStore, cache_service: CacheService) -> QueryCache:
    """QueryCache over FakeStore and FakeRedis, automatic features enabled, no retry delay."""
    return QueryCache(
        fake_store,
        cache_service,
        CacheFeatures(auto_key_enabled=True, auto_invalidation_enabled=True),
        RetryExecutor(retries=3, base_delay=0),
    )


@pytest.fixture
def write_ok() -> WriteResult:
    return WriteResult(affected_rows=1, last_insert_id=None)

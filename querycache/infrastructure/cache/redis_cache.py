"""Redis-based cache service with connection resilience.

The cache is an optimization, never a dependency: every operation goes
through _safe_execute, which waits a bounded time for the connection to be
READY and turns any Redis, socket, timeout or serialization failure into a
documented fallback value. A supervisor task reconnects forever with
exponential backoff and jitter, and the connection state is exposed through
is_healthy() for liveness checks.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

import redis.asyncio as redis

from querycache.core.config import Settings, get_settings
from querycache.core.constants import DELETE_BATCH_SIZE, SCAN_COUNT
from querycache.domain.enums import ConnectionState
from querycache.infrastructure.cache.connection_state import (
    ConnectionStateMachine,
    reconnect_delay,
)
from querycache.infrastructure.cache.keys import namespace_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that mean the socket is gone; the supervisor reconnects after these.
_CONNECTION_ERRORS = (redis.ConnectionError, redis.TimeoutError, OSError)


class CacheJSONEncoder(json.JSONEncoder):
    """JSON encoder for values MySQL rows commonly carry."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, timedelta):
            return obj.total_seconds()
        if isinstance(obj, (bytes, bytearray)):
            return obj.decode("utf-8", errors="replace")
        return super().default(obj)


class CacheService:
    """Async Redis cache service that degrades instead of failing.

    Call connect() at startup and disconnect() at shutdown. Between the
    two, the service keeps itself connected; while Redis is down, reads
    return [] and writes report success from the data standpoint.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize cache service.

        Args:
            redis_client: Optional Redis client for testing or DI.
            settings: Optional settings; defaults to get_settings().
        """
        self.settings = settings or get_settings()
        self.redis = redis_client
        self.enabled = self.settings.redis_enabled
        self.namespace = self.settings.redis_vhost or None
        self.default_ttl = self.settings.cache_default_ttl
        self.wait_timeout = self.settings.redis_wait_timeout
        self._state = ConnectionStateMachine()
        self._supervisor: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state.state

    def is_healthy(self) -> bool:
        """Return True if Redis is connected and READY."""
        return self.enabled and self._state.is_ready

    async def connect(self) -> None:
        """Start the connection supervisor. Call on startup.

        Waits up to the wait timeout for the first connection but never
        raises: if Redis is unreachable the service starts degraded and
        keeps retrying in the background.
        """
        if not self.enabled:
            logger.info("Redis cache disabled, skipping connection")
            return
        if self.redis is None:
            self.redis = redis.Redis(
                host=self.settings.redis_server,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=(
                    self.settings.redis_password.get_secret_value()
                    if self.settings.redis_password
                    else None
                ),
                decode_responses=True,
                socket_connect_timeout=self.wait_timeout,
                socket_timeout=self.wait_timeout,
                socket_keepalive=True,
            )
        if self._supervisor is None or self._supervisor.done():
            self._closing = False
            self._supervisor = asyncio.create_task(
                self._maintain_connection(), name="querycache-redis-supervisor"
            )
        if not await self._state.wait_until_ready(self.wait_timeout):
            logger.warning(
                "Redis not ready after %ss; running without cache until it reconnects",
                self.wait_timeout,
            )

    async def disconnect(self) -> None:
        """Stop reconnecting and close the Redis connection. Call on shutdown."""
        self._closing = True
        if self._supervisor is not None:
            self._supervisor.cancel()
            try:
                await self._supervisor
            except asyncio.CancelledError:
                pass
            self._supervisor = None
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except _CONNECTION_ERRORS as exc:
                logger.warning("Redis close failed: %s", exc)
            self.redis = None
            logger.info("Redis cache disconnected")
        await self._state.on_end()

    async def _maintain_connection(self) -> None:
        """Connect, then watch the connection; reconnect forever after loss."""
        attempt = 0
        while not self._closing:
            await self._state.on_connect()
            try:
                await self.redis.ping()
            except _CONNECTION_ERRORS + (redis.RedisError,) as exc:
                attempt += 1
                await self._state.on_error(exc)
                delay = reconnect_delay(
                    attempt,
                    self.settings.redis_reconnect_base_delay,
                    self.settings.redis_reconnect_max_delay,
                    self.settings.redis_reconnect_jitter,
                )
                logger.info(
                    "Redis reconnecting in %.2fs (attempt %s): %s", delay, attempt, exc
                )
                await asyncio.sleep(delay)
                continue
            if attempt:
                logger.info("Redis reconnected after %s failed attempts", attempt)
            else:
                logger.info(
                    "Redis cache connected: %s:%s",
                    self.settings.redis_server,
                    self.settings.redis_port,
                )
            attempt = 0
            await self._state.on_ready()
            await self._watch_connection()

    async def _watch_connection(self) -> None:
        """Return once the connection is lost; PING periodically meanwhile."""
        while not self._closing:
            try:
                async with asyncio.timeout(self.settings.redis_health_check_interval):
                    await self._state.wait_until_not_ready()
                return
            except TimeoutError:
                pass
            try:
                await self.redis.ping()
            except _CONNECTION_ERRORS + (redis.RedisError,) as exc:
                logger.warning("Redis health check failed: %s", exc)
                await self._state.on_error(exc)
                return

    async def _safe_execute(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        fallback: T,
    ) -> T:
        """Run call against Redis, returning fallback on any cache failure.

        Args:
            operation: Name used in log messages.
            call: Zero-argument coroutine factory doing the Redis work.
            fallback: Value returned when Redis is not ready or the call fails.
        """
        if not self.enabled or self.redis is None:
            return fallback
        if not await self._state.wait_until_ready(self.wait_timeout):
            logger.warning(
                "Cache %s skipped: Redis not ready after %ss", operation, self.wait_timeout
            )
            return fallback
        try:
            async with asyncio.timeout(self.wait_timeout):
                return await call()
        except _CONNECTION_ERRORS as exc:
            logger.warning("Cache %s unavailable (Redis disconnected): %s", operation, exc)
            await self._state.on_error(exc)
            return fallback
        except redis.RedisError as exc:
            logger.warning("Cache %s error: %s", operation, exc)
            return fallback
        except (TypeError, ValueError) as exc:
            logger.warning("Cache %s serialization error: %s", operation, exc)
            return fallback

    async def get(self, key: str) -> Any:
        """Return the cached value (JSON-deserialized), or [] on miss or failure.

        Args:
            key: Cache key before namespacing.
        """
        namespaced = namespace_key(key, self.namespace)

        async def _get() -> Any:
            value = await self.redis.get(namespaced)
            if value is None:
                logger.debug("Cache MISS: %s", namespaced)
                return []
            logger.debug("Cache HIT: %s", namespaced)
            return json.loads(value)

        return await self._safe_execute("get", _get, [])

    async def set(self, key: str, value: T, ttl: int | None = None) -> T:
        """Store value with TTL and return it, whether or not caching worked.

        Args:
            key: Cache key before namespacing.
            value: JSON-serializable value (rows, pagination result).
            ttl: Time-to-live in seconds; defaults to CACHE_DEFAULT_TTL.
        """
        namespaced = namespace_key(key, self.namespace)
        expiry = ttl or self.default_ttl

        async def _set() -> T:
            serialized = json.dumps(value, ensure_ascii=False, cls=CacheJSONEncoder)
            await self.redis.setex(namespaced, expiry, serialized)
            logger.debug("Cache SET: %s (TTL: %ss)", namespaced, expiry)
            return value

        return await self._safe_execute("set", _set, value)

    async def exists(self, key: str) -> bool:
        """Return True if key is cached; False on miss or failure."""
        namespaced = namespace_key(key, self.namespace)

        async def _exists() -> bool:
            return bool(await self.redis.exists(namespaced))

        return await self._safe_execute("exists", _exists, False)

    async def delete(self, keys: str | Sequence[str]) -> None:
        """Remove one key or several keys. Fire-and-forget.

        Args:
            keys: Cache key or keys before namespacing.
        """
        names = [keys] if isinstance(keys, str) else list(keys)
        if not names:
            return
        namespaced = [namespace_key(name, self.namespace) for name in names]

        async def _delete() -> None:
            await self.redis.delete(*namespaced)
            logger.debug("Cache DELETE: %s", namespaced)

        await self._safe_execute("delete", _delete, None)

    async def delete_by_prefix(self, patterns: str | Sequence[str]) -> None:
        """Delete every key starting with each pattern, using SCAN + batched DEL.

        SCAN iterates with a cursor instead of listing all keys at once, so
        this stays safe on large keyspaces and clustered deployments. Keys
        are deleted in batches of DELETE_BATCH_SIZE.

        Args:
            patterns: Key prefix or prefixes, glob characters allowed
                (e.g. "users_*"). A trailing "*" is implied.
        """
        prefixes = [patterns] if isinstance(patterns, str) else list(patterns)
        for prefix in prefixes:
            match = prefix if prefix.endswith("*") else f"{prefix}*"
            namespaced = namespace_key(match, self.namespace)

            async def _delete_matching(pattern: str = namespaced) -> None:
                deleted = 0
                batch: list[str] = []
                async for key in self.redis.scan_iter(match=pattern, count=SCAN_COUNT):
                    batch.append(key)
                    if len(batch) >= DELETE_BATCH_SIZE:
                        deleted += int(await self.redis.delete(*batch) or 0)
                        batch = []
                if batch:
                    deleted += int(await self.redis.delete(*batch) or 0)
                if deleted > 0:
                    logger.info("Cache INVALIDATE: %s (%s keys)", pattern, deleted)

            await self._safe_execute("delete_by_prefix", _delete_matching, None)

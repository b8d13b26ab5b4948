"""Query cache: cache-aside reads, invalidating writes, transactions.

Reads look in the cache first and fall back to the backing store, then
populate the cache. Writes go to the backing store and then delete the
key prefixes the invalidation planner selects. The cache store is never
required: when it is down, reads hit the backing store and writes skip
invalidation.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from querycache.application.services.transaction import (
    TransactionContext,
    TransactionCoordinator,
)
from querycache.core.constants import (
    CACHE_KEY_SEP,
    DEFAULT_BULK_CHUNK_SIZE,
    DEFAULT_PAGE_SIZE,
)
from querycache.domain.exceptions import CacheKeyRequiredException, InvalidArgumentException
from querycache.domain.value_objects import (
    BulkInsertResult,
    CacheFeatures,
    PaginatedResult,
    PoolStats,
    WriteResult,
)
from querycache.infrastructure.cache.cache_protocol import CacheProtocol
from querycache.infrastructure.cache.invalidation import InvalidationPlanner, ManualPattern
from querycache.infrastructure.cache.keys import CacheKeyGenerator
from querycache.infrastructure.persistence.database import BackingStore, Rows
from querycache.infrastructure.persistence.retry import RetryExecutor
from querycache.shared.utils.sql import strip_statement, validate_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def normalize_page(page: Any) -> int:
    """Return page as a non-negative int; anything unusable becomes 0.

    Accepts ints, digit-only strings and integral floats.
    """
    if isinstance(page, bool):
        return 0
    if isinstance(page, int):
        return page if page >= 0 else 0
    if isinstance(page, str) and page.strip().isdigit():
        return int(page.strip())
    if isinstance(page, float) and page.is_integer() and page >= 0:
        return int(page)
    return 0


class QueryCache:
    """Cache-aside query layer over a backing store and a cache store.

    One instance is shared by the whole application. Create it with a
    BackingStore and an optional CacheService (see
    querycache.core.lifespan.build_query_cache) and call close() on shutdown.
    """

    def __init__(
        self,
        store: BackingStore,
        cache: CacheProtocol | None = None,
        features: CacheFeatures | None = None,
        retry: RetryExecutor | None = None,
        key_generator: CacheKeyGenerator | None = None,
    ) -> None:
        """Initialize the query cache.

        Args:
            store: Backing-store pool.
            cache: Cache store; None runs every call against the backing store.
            features: Automatic key and invalidation switches.
            retry: Retry executor for backing-store calls.
            key_generator: Key derivation used when callers omit a key.
        """
        self.store = store
        self.cache = cache
        self.retry = retry or RetryExecutor()
        self.key_generator = key_generator or CacheKeyGenerator()
        self.planner = InvalidationPlanner(features or CacheFeatures())

    @property
    def features(self) -> CacheFeatures:
        return self.planner.features

    def configure(
        self,
        auto_key_enabled: bool | None = None,
        auto_invalidation_enabled: bool | None = None,
        invalidation_rules: Mapping[str, str | Sequence[str]] | None = None,
    ) -> CacheFeatures:
        """Replace the feature switches; omitted arguments keep their value.

        Returns:
            The new CacheFeatures.
        """
        changes: dict[str, Any] = {}
        if auto_key_enabled is not None:
            changes["auto_key_enabled"] = auto_key_enabled
        if auto_invalidation_enabled is not None:
            changes["auto_invalidation_enabled"] = auto_invalidation_enabled
        if invalidation_rules is not None:
            changes["invalidation_rules"] = invalidation_rules
        features = dataclasses.replace(self.features, **changes)
        self.planner = InvalidationPlanner(features)
        logger.info(
            "Cache features: auto_key=%s auto_invalidation=%s rules=%s",
            features.auto_key_enabled,
            features.auto_invalidation_enabled,
            sorted(features.invalidation_rules),
        )
        return features

    def resolve_key(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        key: str | None = None,
    ) -> str:
        """Return key, or a generated one when automatic keys are enabled.

        Raises:
            CacheKeyRequiredException: No key and automatic keys disabled.
        """
        if key:
            return key
        if not self.features.auto_key_enabled:
            raise CacheKeyRequiredException()
        return self.key_generator.generate(statement, parameters)

    async def _execute(
        self,
        statement: str,
        parameters: Sequence[Any] | None,
        target: str | None,
    ) -> Rows | WriteResult:
        async with self.store.connection(target) as conn:
            return await conn.execute(statement, parameters)

    async def _run(
        self, fn: Callable[[], Awaitable[T]], timeout: float | None = None
    ) -> T:
        return await self.retry.run(fn, timeout=timeout)

    async def read(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        key: str | None = None,
        *,
        target: str | None = None,
        ttl: int | None = None,
        timeout: float | None = None,
    ) -> Rows | WriteResult:
        """Return rows for statement, from the cache when possible.

        An empty cached list counts as a miss. Rows fetched from the
        backing store are cached under the key before being returned.

        Args:
            statement: SQL with '?' placeholders.
            parameters: Positional values for the placeholders.
            key: Cache key; generated from the statement when omitted and
                automatic keys are enabled.
            target: Database to run against instead of the default one.
            ttl: Cache TTL in seconds (default: CACHE_DEFAULT_TTL).
            timeout: Per-attempt limit in seconds for the backing-store call.

        Raises:
            CacheKeyRequiredException: No key and automatic keys disabled.
            ShutdownRejectedException: close() was called.
            QueryTimeoutException: The backing-store call exceeded timeout.
        """
        self.retry.ensure_accepting()
        cache_key = self.resolve_key(statement, parameters, key)
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if isinstance(cached, list) and cached:
                return cached

        rows = await self._run(
            lambda: self._execute(statement, parameters, target), timeout
        )
        if self.cache is not None and isinstance(rows, list):
            await self.cache.set(cache_key, rows, ttl)
        return rows

    async def read_paginated(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        key: str | None = None,
        page: Any = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
        *,
        target: str | None = None,
        ttl: int | None = None,
    ) -> PaginatedResult:
        """Return one page of rows plus total and page counts.

        Pages are zero-based. The total comes from a COUNT(*) over the
        statement, the page from the statement with LIMIT offset, size;
        both run on the same connection. The whole result is cached as one
        object.

        Raises:
            InvalidArgumentException: page_size is not a positive integer.
            CacheKeyRequiredException: No key and automatic keys disabled.
        """
        if not _is_positive_int(page_size):
            raise InvalidArgumentException(
                f"page_size must be a positive integer, got {page_size!r}", "page_size"
            )
        self.retry.ensure_accepting()
        page = normalize_page(page)
        if key:
            cache_key = key
        else:
            cache_key = CACHE_KEY_SEP.join(
                [self.resolve_key(statement, parameters), "page", str(page), str(page_size)]
            )

        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if isinstance(cached, dict) and cached:
                return cached

        base = strip_statement(statement)
        offset = page * page_size

        async def _fetch_page() -> PaginatedResult:
            async with self.store.connection(target) as conn:
                counted = await conn.execute(
                    f"SELECT COUNT(*) AS total_count FROM ({base}) AS paginated_source",
                    parameters,
                )
                detail = await conn.execute(f"{base} LIMIT {offset}, {page_size}", parameters)
            total = int(counted[0]["total_count"]) if counted else 0
            return PaginatedResult(
                total_count=total,
                page_count=math.ceil(total / page_size),
                detail=detail,
            )

        result = await self._run(_fetch_page)
        if self.cache is not None:
            await self.cache.set(cache_key, result, ttl)
        return result

    async def write(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        manual_pattern: ManualPattern = None,
        *,
        target: str | None = None,
        timeout: float | None = None,
    ) -> Rows | WriteResult:
        """Execute a statement, then invalidate the affected cache keys.

        Invalidation runs only after the statement succeeded. A manual
        pattern is always honored; otherwise patterns come from automatic
        invalidation when it is enabled.

        Args:
            statement: SQL with '?' placeholders.
            parameters: Positional values for the placeholders.
            manual_pattern: Key prefix or prefixes to delete.
            target: Database to run against instead of the default one.
            timeout: Per-attempt limit in seconds for the backing-store call.
        """
        self.retry.ensure_accepting()
        result = await self._run(
            lambda: self._execute(statement, parameters, target), timeout
        )
        await self._invalidate(self.planner.plan(statement, manual_pattern))
        return result

    async def bulk_insert(
        self,
        table: str,
        records: Sequence[Mapping[str, Any]],
        *,
        chunk_size: int = DEFAULT_BULK_CHUNK_SIZE,
        reset_pattern: ManualPattern = None,
        target: str | None = None,
    ) -> BulkInsertResult:
        """Insert records with one multi-row INSERT per chunk.

        Columns are taken from the first record; records missing a column
        insert NULL. All chunks run in one transaction on one connection, so
        a retried attempt never duplicates rows. Cache invalidation happens
        once, after the last chunk.

        Raises:
            InvalidArgumentException: Bad table or column name, or chunk_size.
        """
        if not records:
            return BulkInsertResult(inserted_rows=0, chunks=0)
        if not _is_positive_int(chunk_size):
            raise InvalidArgumentException(
                f"chunk_size must be a positive integer, got {chunk_size!r}", "chunk_size"
            )
        validate_identifier(table, "table name")
        columns = list(records[0].keys())
        if not columns:
            raise InvalidArgumentException("records must have at least one column", "records")
        for column in columns:
            validate_identifier(column, "column name")
        self.retry.ensure_accepting()

        column_list = ", ".join(f"`{column}`" for column in columns)
        row_placeholder = "(" + ", ".join("?" for _ in columns) + ")"
        insert_prefix = f"INSERT INTO `{table}` ({column_list}) VALUES "

        async def _insert_chunks() -> BulkInsertResult:
            conn = await self.store.acquire(autocommit=False)
            try:
                await conn.begin()
                try:
                    if target:
                        await conn.use_database(target)
                    inserted = 0
                    chunks = 0
                    for start in range(0, len(records), chunk_size):
                        chunk = records[start : start + chunk_size]
                        values = [record.get(column) for record in chunk for column in columns]
                        statement = insert_prefix + ", ".join(row_placeholder for _ in chunk)
                        result = await conn.execute(statement, values)
                        inserted += result.affected_rows
                        chunks += 1
                    await conn.commit()
                except BaseException:
                    try:
                        await conn.rollback()
                    except Exception:
                        logger.exception("Bulk insert rollback failed")
                    raise
            finally:
                await conn.release()
            return BulkInsertResult(inserted_rows=inserted, chunks=chunks)

        result = await self._run(_insert_chunks)
        logger.info(
            "Bulk insert into %s: %s rows in %s chunks", table, result.inserted_rows, result.chunks
        )
        await self._invalidate(self.planner.plan(f"INSERT INTO `{table}`", reset_pattern))
        return result

    @asynccontextmanager
    async def transaction(self, *, target: str | None = None):
        """Run statements atomically on one connection.

        Usage:
            async with query_cache.transaction() as tx:
                await tx.query("INSERT INTO orders (user_id) VALUES (?)", [1])
                await tx.query("UPDATE users SET order_count = order_count + 1 WHERE id = ?", [1])

        Invalidations are applied after commit and discarded on rollback.
        """
        coordinator = TransactionCoordinator(
            self.store,
            self.cache,
            self.planner,
            self.retry,
            self.resolve_key,
            target=target,
        )
        async with coordinator as context:
            yield context

    async def with_transaction(
        self,
        callback: Callable[[TransactionContext], Awaitable[T]],
        *,
        target: str | None = None,
    ) -> T:
        """Run callback(tx) in a transaction and return its result."""
        async with self.transaction(target=target) as tx:
            return await callback(tx)

    async def _invalidate(self, patterns: list[str]) -> None:
        if patterns and self.cache is not None:
            await self.cache.delete_by_prefix(patterns)

    # Direct cache access

    async def get_cached(self, key: str) -> Any:
        if self.cache is None:
            return []
        return await self.cache.get(key)

    async def set_cached(self, key: str, value: T, ttl: int | None = None) -> T:
        if self.cache is None:
            return value
        return await self.cache.set(key, value, ttl)

    async def delete_cached(self, keys: str | Sequence[str]) -> None:
        if self.cache is not None:
            await self.cache.delete(keys)

    async def delete_cached_by_prefix(self, patterns: str | Sequence[str]) -> None:
        if self.cache is not None:
            await self.cache.delete_by_prefix(patterns)

    def is_healthy(self) -> bool:
        """True when the cache store is connected and ready."""
        return self.cache is not None and self.cache.is_healthy()

    def pool_stats(self) -> PoolStats:
        return self.store.pool_stats()

    async def close(self) -> None:
        """Graceful shutdown: reject new calls, close the pool, disconnect the cache."""
        logger.info("Query cache shutting down")
        self.retry.shutdown()
        await self.store.dispose()
        if self.cache is not None:
            await self.cache.disconnect()

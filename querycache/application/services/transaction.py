"""Transaction coordinator: one connection, commit or roll back, then invalidate.

Cache invalidations planned by statements inside the transaction are
buffered and only flushed after a successful commit, once per unique
pattern. On rollback they are discarded, so readers never see a cache
cleared for data that was never written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Any

from querycache.domain.enums import TransactionState
from querycache.domain.value_objects import WriteResult
from querycache.infrastructure.cache.cache_protocol import CacheProtocol
from querycache.infrastructure.cache.invalidation import InvalidationPlanner, ManualPattern
from querycache.infrastructure.persistence.database import BackingStore, Rows, StoreConnection
from querycache.infrastructure.persistence.retry import RetryExecutor

logger = logging.getLogger(__name__)

KeyResolver = Callable[[str, Sequence[Any] | None, str | None], str]


class TransactionContext:
    """Handle passed to transaction bodies."""

    def __init__(
        self,
        connection: StoreConnection,
        planner: InvalidationPlanner,
        cache: CacheProtocol | None,
        resolve_key: KeyResolver,
    ) -> None:
        self._connection = connection
        self._planner = planner
        self._cache = cache
        self._resolve_key = resolve_key
        self._pending: list[str] = []

    @property
    def connection(self) -> StoreConnection:
        return self._connection

    @property
    def pending_invalidations(self) -> list[str]:
        """Patterns buffered so far, deduplicated, in first-seen order."""
        return list(dict.fromkeys(self._pending))

    async def query(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        manual_pattern: ManualPattern = None,
    ) -> Rows | WriteResult:
        """Execute statement in the transaction; buffer its invalidations.

        Args:
            statement: SQL with '?' placeholders.
            parameters: Positional values for the placeholders.
            manual_pattern: Explicit pattern(s) to invalidate after commit.
        """
        result = await self._connection.execute(statement, parameters)
        self._pending.extend(self._planner.plan(statement, manual_pattern))
        return result

    async def cached_read(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        key: str | None = None,
        ttl: int | None = None,
    ) -> Rows | WriteResult:
        """Read through the cache from inside the transaction.

        A miss executes on the transaction's connection and populates the
        cache immediately, so uncommitted rows can become visible to other
        readers. Use it only for data the transaction does not modify.
        """
        cache_key = self._resolve_key(statement, parameters, key)
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if isinstance(cached, list) and cached:
                return cached
        rows = await self._connection.execute(statement, parameters)
        if self._cache is not None and isinstance(rows, list):
            await self._cache.set(cache_key, rows, ttl)
        return rows


class TransactionCoordinator:
    """Async context manager running one backing-store transaction.

    Usage:
        async with TransactionCoordinator(store, cache, planner, retry, resolve) as tx:
            await tx.query("UPDATE accounts SET balance = balance - ? WHERE id = ?", [10, 1])
    """

    def __init__(
        self,
        store: BackingStore,
        cache: CacheProtocol | None,
        planner: InvalidationPlanner,
        retry: RetryExecutor,
        resolve_key: KeyResolver,
        target: str | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._planner = planner
        self._retry = retry
        self._resolve_key = resolve_key
        self._target = target
        self._connection: StoreConnection | None = None
        self._context: TransactionContext | None = None
        self.state: TransactionState | None = None

    async def __aenter__(self) -> TransactionContext:
        self._retry.ensure_accepting("transactions")
        connection = await self._store.acquire(autocommit=False)
        try:
            await connection.begin()
            if self._target:
                await connection.use_database(self._target)
        except BaseException:
            try:
                await self._rollback(connection)
            finally:
                await connection.release()
            raise
        self._connection = connection
        self._context = TransactionContext(
            connection, self._planner, self._cache, self._resolve_key
        )
        self.state = TransactionState.OPEN
        return self._context

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        connection = self._connection
        try:
            if exc is None:
                try:
                    await connection.commit()
                except BaseException:
                    await self._rollback(connection)
                    raise
                self.state = TransactionState.COMMITTED
            else:
                await self._rollback(connection)
        finally:
            await connection.release()

        if self.state is TransactionState.COMMITTED:
            await self._flush()
        else:
            logger.debug(
                "Transaction rolled back, discarding %s pending invalidations",
                len(self._context.pending_invalidations),
            )
        return False

    async def _rollback(self, connection: StoreConnection) -> None:
        """Roll back; a failing rollback is logged, never raised over the original error."""
        self.state = TransactionState.ROLLED_BACK
        try:
            await connection.rollback()
        except Exception:
            logger.exception("Transaction rollback failed")

    async def _flush(self) -> None:
        patterns = self._context.pending_invalidations
        if not patterns or self._cache is None:
            return
        logger.debug("Transaction committed, invalidating %s", patterns)
        await self._cache.delete_by_prefix(patterns)

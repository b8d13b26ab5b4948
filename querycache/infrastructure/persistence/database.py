"""Persistence: async engine and pooled connections for the backing store.

Statements are plain SQL with '?' placeholders and positional parameters,
executed through SQLAlchemy's driver-level API on the aiomysql driver.
Every acquire() must be matched by exactly one release(); connection()
does that for callers, including on every error path.

Connections used outside a transaction run in AUTOCOMMIT; the transaction
coordinator acquires with autocommit=False and calls begin() itself.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncTransaction,
    create_async_engine,
)

from querycache.core.config import Settings, get_settings
from querycache.domain.value_objects import PoolStats, WriteResult
from querycache.shared.utils.sql import to_driver_placeholders, validate_identifier

logger = logging.getLogger(__name__)

Rows = list[dict[str, Any]]


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the pooled asyncio engine for the configured MySQL database."""
    return create_async_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
        pool_size=settings.db_connection_limit,
        max_overflow=settings.db_queue_limit,
        pool_recycle=settings.db_pool_recycle,
        connect_args={"connect_timeout": settings.db_connect_timeout / 1000},
    )


class StoreConnection:
    """One connection checked out of the backing-store pool."""

    def __init__(
        self,
        connection: AsyncConnection,
        store: "BackingStore",
    ) -> None:
        self._connection = connection
        self._store = store
        self._transaction: AsyncTransaction | None = None
        self._switched = False
        self._released = False

    @property
    def raw(self) -> AsyncConnection:
        """Underlying SQLAlchemy connection, for advanced use."""
        return self._connection

    @property
    def released(self) -> bool:
        return self._released

    async def execute(
        self, statement: str, parameters: Sequence[Any] | None = None
    ) -> Rows | WriteResult:
        """Run statement and return its rows, or a WriteResult if it has none.

        Args:
            statement: SQL with '?' placeholders.
            parameters: Positional values for the placeholders.
        """
        result = await self._connection.exec_driver_sql(
            to_driver_placeholders(statement), tuple(parameters or ())
        )
        if result.returns_rows:
            return [dict(row) for row in result.mappings().all()]
        return WriteResult(
            affected_rows=result.rowcount,
            last_insert_id=result.lastrowid or None,
        )

    async def use_database(self, database: str) -> None:
        """Switch this connection to another database (validated name)."""
        validate_identifier(database, "database name")
        await self._connection.exec_driver_sql(f"USE `{database}`")
        self._switched = True

    async def begin(self) -> None:
        self._transaction = await self._connection.begin()

    async def commit(self) -> None:
        if self._transaction is not None:
            await self._transaction.commit()
            self._transaction = None

    async def rollback(self) -> None:
        if self._transaction is not None:
            transaction, self._transaction = self._transaction, None
            await transaction.rollback()

    async def release(self) -> None:
        """Return the connection to the pool. Safe to call more than once.

        A connection switched to another database is switched back first;
        if that fails the connection is discarded instead of pooled.
        """
        if self._released:
            return
        self._released = True
        try:
            default = self._store.default_database
            if self._switched and default and not self._connection.invalidated:
                await self._connection.exec_driver_sql(f"USE `{default}`")
        except SQLAlchemyError as exc:
            logger.warning("Could not restore default database, discarding connection: %s", exc)
            await self._connection.invalidate()
        finally:
            await self._connection.close()


class BackingStore:
    """Backing-store pool: acquire/release connections, stats, shutdown."""

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            engine: Optional engine for testing or DI; built from settings otherwise.
            settings: Optional settings; defaults to get_settings().
        """
        self.settings = settings or get_settings()
        self.engine = engine or create_engine(self.settings)
        self.default_database = self.settings.db_name or None
        self._waiting = 0

    async def acquire(self, *, autocommit: bool = True) -> StoreConnection:
        """Check a connection out of the pool; the caller must release() it."""
        self._waiting += 1
        try:
            connection = await self.engine.connect()
        finally:
            self._waiting -= 1
        if autocommit:
            try:
                await connection.execution_options(isolation_level="AUTOCOMMIT")
            except BaseException:
                await connection.close()
                raise
        return StoreConnection(connection, self)

    @asynccontextmanager
    async def connection(
        self, target: str | None = None, *, autocommit: bool = True
    ) -> AsyncIterator[StoreConnection]:
        """Acquire a connection, optionally switch database, always release.

        Args:
            target: Database to switch to for this connection.
            autocommit: False for connections that will run a transaction.
        """
        conn = await self.acquire(autocommit=autocommit)
        try:
            if target:
                await conn.use_database(target)
            yield conn
        finally:
            await conn.release()

    def pool_stats(self) -> PoolStats:
        """Current pool occupancy, for monitoring."""
        pool = self.engine.pool
        checked_out = pool.checkedout() if hasattr(pool, "checkedout") else 0
        checked_in = pool.checkedin() if hasattr(pool, "checkedin") else 0
        return PoolStats(
            total=checked_in + checked_out,
            active=checked_out,
            free=checked_in,
            queued=self._waiting,
        )

    async def dispose(self) -> None:
        """Close every pooled connection. Call on shutdown."""
        await self.engine.dispose()
        logger.info("Database engine disposed")

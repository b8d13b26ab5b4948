"""BackingStore and StoreConnection tests with a mocked SQLAlchemy engine."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from querycache.domain.exceptions import InvalidArgumentException
from querycache.domain.value_objects import PoolStats, WriteResult
from querycache.infrastructure.persistence.database import BackingStore
from tests.conftest import make_settings


def _result(rows=None, rowcount: int = 0, lastrowid: int = 0) -> MagicMock:
    result = MagicMock()
    result.returns_rows = rows is not None
    result.mappings.return_value.all.return_value = rows or []
    result.rowcount = rowcount
    result.lastrowid = lastrowid
    return result


@pytest.fixture
def raw_connection() -> MagicMock:
    connection = MagicMock()
    connection.exec_driver_sql = AsyncMock(return_value=_result([]))
    connection.execution_options = AsyncMock()
    connection.begin = AsyncMock()
    connection.close = AsyncMock()
    connection.invalidate = AsyncMock()
    connection.invalidated = False
    return connection


@pytest.fixture
def store(raw_connection: MagicMock) -> BackingStore:
    engine = MagicMock()
    engine.connect = AsyncMock(return_value=raw_connection)
    engine.dispose = AsyncMock()
    engine.pool.checkedout.return_value = 2
    engine.pool.checkedin.return_value = 3
    return BackingStore(engine=engine, settings=make_settings())


async def test_execute_returns_rows(store: BackingStore, raw_connection: MagicMock) -> None:
    raw_connection.exec_driver_sql.return_value = _result([{"id": 1, "name": "Ann"}])
    async with store.connection() as conn:
        rows = await conn.execute("SELECT * FROM users WHERE id = ? AND note LIKE '%x'", [1])
    assert rows == [{"id": 1, "name": "Ann"}]
    raw_connection.exec_driver_sql.assert_awaited_once_with(
        "SELECT * FROM users WHERE id = %s AND note LIKE '%%x'", (1,)
    )
    raw_connection.execution_options.assert_awaited_once_with(isolation_level="AUTOCOMMIT")
    raw_connection.close.assert_awaited_once()


async def test_execute_returns_write_result(store: BackingStore, raw_connection: MagicMock) -> None:
    raw_connection.exec_driver_sql.return_value = _result(None, rowcount=1, lastrowid=42)
    async with store.connection() as conn:
        result = await conn.execute("INSERT INTO users (name) VALUES (?)", ["Ann"])
    assert result == WriteResult(affected_rows=1, last_insert_id=42)


async def test_no_parameters_passes_empty_tuple(
    store: BackingStore, raw_connection: MagicMock
) -> None:
    async with store.connection() as conn:
        await conn.execute("SELECT 1")
    raw_connection.exec_driver_sql.assert_awaited_once_with("SELECT 1", ())


async def test_target_database_switched_and_restored(
    store: BackingStore, raw_connection: MagicMock
) -> None:
    async with store.connection("reporting") as conn:
        await conn.execute("SELECT 1")
    statements = [call.args[0] for call in raw_connection.exec_driver_sql.await_args_list]
    assert statements == ["USE `reporting`", "SELECT 1", "USE `app`"]
    raw_connection.close.assert_awaited_once()


async def test_invalid_target_rejected_and_released(
    store: BackingStore, raw_connection: MagicMock
) -> None:
    with pytest.raises(InvalidArgumentException):
        async with store.connection("bad`name"):
            pass
    raw_connection.exec_driver_sql.assert_not_awaited()
    raw_connection.close.assert_awaited_once()


async def test_failed_restore_discards_connection(
    store: BackingStore, raw_connection: MagicMock
) -> None:
    async with store.connection("reporting") as conn:
        raw_connection.exec_driver_sql.side_effect = OperationalError("USE", (), Exception("gone"))
    raw_connection.invalidate.assert_awaited_once()
    raw_connection.close.assert_awaited_once()
    assert conn.released


async def test_release_is_idempotent(store: BackingStore, raw_connection: MagicMock) -> None:
    conn = await store.acquire()
    await conn.release()
    await conn.release()
    raw_connection.close.assert_awaited_once()


async def test_connection_released_on_error(
    store: BackingStore, raw_connection: MagicMock
) -> None:
    raw_connection.exec_driver_sql.side_effect = OperationalError("SELECT", (), Exception("lost"))
    with pytest.raises(OperationalError):
        async with store.connection() as conn:
            await conn.execute("SELECT 1")
    raw_connection.close.assert_awaited_once()


async def test_transaction_connection_skips_autocommit(
    store: BackingStore, raw_connection: MagicMock
) -> None:
    transaction = MagicMock()
    transaction.commit = AsyncMock()
    transaction.rollback = AsyncMock()
    raw_connection.begin.return_value = transaction
    conn = await store.acquire(autocommit=False)
    await conn.begin()
    await conn.commit()
    await conn.rollback()
    await conn.release()
    raw_connection.execution_options.assert_not_awaited()
    transaction.commit.assert_awaited_once()
    transaction.rollback.assert_not_awaited()


def test_pool_stats(store: BackingStore) -> None:
    assert store.pool_stats() == PoolStats(total=5, active=2, free=3, queued=0)


async def test_dispose(store: BackingStore) -> None:
    await store.dispose()
    store.engine.dispose.assert_awaited_once()

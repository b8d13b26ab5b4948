"""Cache-aside query layer for MySQL with a Redis cache.

Typical use:

    async with build_query_cache() as qc:
        users = await qc.read("SELECT * FROM users WHERE id = ?", [1], "users:1")
        await qc.write("UPDATE users SET name = ? WHERE id = ?", ["Ann", 1], "users:*")
"""

from querycache.application.services.query_cache import QueryCache
from querycache.application.services.transaction import TransactionContext
from querycache.core.config import Settings, get_settings
from querycache.core.lifespan import build_query_cache
from querycache.domain.exceptions import (
    CacheKeyRequiredException,
    ConfigurationException,
    InvalidArgumentException,
    QueryCacheException,
    QueryTimeoutException,
    ShutdownRejectedException,
)
from querycache.domain.value_objects import (
    BulkInsertResult,
    CacheFeatures,
    PaginatedResult,
    PoolStats,
    WriteResult,
)

__all__ = [
    "BulkInsertResult",
    "CacheFeatures",
    "CacheKeyRequiredException",
    "ConfigurationException",
    "InvalidArgumentException",
    "PaginatedResult",
    "PoolStats",
    "QueryCache",
    "QueryCacheException",
    "QueryTimeoutException",
    "Settings",
    "ShutdownRejectedException",
    "TransactionContext",
    "WriteResult",
    "build_query_cache",
    "get_settings",
]

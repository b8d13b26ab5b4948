"""Domain layer: enums, value objects, and exceptions.

No dependencies on infrastructure. Used by application and infrastructure
layers.
"""

from querycache.domain.enums import ConnectionState, KeyStrategy, TransactionState
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
    # Enums
    "ConnectionState",
    "KeyStrategy",
    "TransactionState",
    # Exceptions
    "CacheKeyRequiredException",
    "ConfigurationException",
    "InvalidArgumentException",
    "QueryCacheException",
    "QueryTimeoutException",
    "ShutdownRejectedException",
    # Value objects
    "BulkInsertResult",
    "CacheFeatures",
    "PaginatedResult",
    "PoolStats",
    "WriteResult",
]

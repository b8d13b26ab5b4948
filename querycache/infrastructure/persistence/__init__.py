"""Persistence: backing-store pool and retry executor."""

from querycache.infrastructure.persistence.database import (
    BackingStore,
    StoreConnection,
    create_engine,
)
from querycache.infrastructure.persistence.retry import RetryExecutor, transient_error_code

__all__ = [
    "BackingStore",
    "RetryExecutor",
    "StoreConnection",
    "create_engine",
    "transient_error_code",
]

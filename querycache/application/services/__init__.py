"""Application services: the query cache orchestrator and transactions."""

from querycache.application.services.query_cache import QueryCache, normalize_page
from querycache.application.services.transaction import (
    TransactionContext,
    TransactionCoordinator,
)

__all__ = [
    "QueryCache",
    "TransactionContext",
    "TransactionCoordinator",
    "normalize_page",
]

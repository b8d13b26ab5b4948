"""Cache protocol consumed by the query cache orchestrator (DIP).

CacheService is the Redis implementation; tests may pass any object with
these methods. Implementations never raise: failures become the documented
fallback values.
"""

from collections.abc import Sequence
from typing import Any, Protocol


class CacheProtocol(Protocol):
    """Cache-store operations used by QueryCache and TransactionCoordinator."""

    enabled: bool

    def is_healthy(self) -> bool:
        """Return True if the cache store is connected and ready."""
        ...

    async def get(self, key: str) -> Any:
        """Return cached value, or [] on miss or failure."""
        ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> Any:
        """Store value with optional TTL in seconds; return value."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if key is cached."""
        ...

    async def delete(self, keys: str | Sequence[str]) -> None:
        """Remove key or keys from cache."""
        ...

    async def delete_by_prefix(self, patterns: str | Sequence[str]) -> None:
        """Remove every key starting with each pattern."""
        ...

    async def disconnect(self) -> None:
        """Close the cache-store connection."""
        ...

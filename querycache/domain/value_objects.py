"""Domain value objects for the query cache layer.

Value objects are immutable and carry no identity. CacheFeatures is the
only piece of configuration the key generator and the invalidation planner
read; it is owned by one QueryCache instance and replaced, never mutated.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypedDict


def _normalize_rules(
    rules: Mapping[str, str | list[str] | tuple[str, ...]] | None,
) -> Mapping[str, tuple[str, ...]]:
    """Freeze table rules into a read-only mapping of pattern tuples."""
    normalized: dict[str, tuple[str, ...]] = {}
    for table, patterns in (rules or {}).items():
        if isinstance(patterns, str):
            normalized[table] = (patterns,)
        else:
            normalized[table] = tuple(patterns)
    return MappingProxyType(normalized)


@dataclass(frozen=True)
class CacheFeatures:
    """Feature switches for automatic keys and automatic invalidation.

    invalidation_rules maps a table name to one or more cache-key prefix
    patterns; a single string is accepted and stored as a one-item tuple.
    """

    auto_key_enabled: bool = False
    auto_invalidation_enabled: bool = False
    invalidation_rules: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "invalidation_rules", _normalize_rules(self.invalidation_rules)
        )

    def patterns_for(self, table: str) -> tuple[str, ...] | None:
        """Return configured patterns for table, or None when no rule exists."""
        return self.invalidation_rules.get(table)


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a statement that returns no rows."""

    affected_rows: int
    last_insert_id: int | None = None


@dataclass(frozen=True)
class BulkInsertResult:
    """Totals for a chunked multi-row insert."""

    inserted_rows: int
    chunks: int


@dataclass(frozen=True)
class PoolStats:
    """Backing-store pool occupancy.

    queued counts callers currently waiting to acquire a connection.
    """

    total: int
    active: int
    free: int
    queued: int


class PaginatedResult(TypedDict):
    """One page of rows plus totals, cached as a single JSON object."""

    total_count: int
    page_count: int
    detail: list[dict[str, Any]]

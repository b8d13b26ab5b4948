"""Cache invalidation planning for write statements.

Decides which key-prefix patterns to delete after a statement runs:

- a manual pattern (string or list) always wins, even when automatic
  invalidation is off;
- otherwise, with automatic invalidation on, INSERT/UPDATE/DELETE/REPLACE
  statements map to the configured patterns for their table, or to the
  defaults "{table}_*" and "{table}:*".
"""

from __future__ import annotations

from collections.abc import Sequence

from querycache.core.constants import CACHE_KEY_SEP
from querycache.domain.value_objects import CacheFeatures
from querycache.shared.utils.sql import extract_write_table, is_write_statement

ManualPattern = str | Sequence[str] | None


def default_patterns(table: str) -> list[str]:
    """Patterns used for a table with no configured rule."""
    return [f"{table}_*", f"{table}{CACHE_KEY_SEP}*"]


class InvalidationPlanner:
    """Maps statements to invalidation patterns using the given features."""

    def __init__(self, features: CacheFeatures | None = None) -> None:
        self.features = features or CacheFeatures()

    def plan(self, statement: str, manual_pattern: ManualPattern = None) -> list[str]:
        """Return the patterns to invalidate after statement runs.

        Args:
            statement: SQL statement that was (or will be) executed.
            manual_pattern: Explicit pattern or patterns; bypasses detection.

        Returns:
            Patterns in rule order; empty when nothing should be invalidated.
        """
        if manual_pattern:
            if isinstance(manual_pattern, str):
                return [manual_pattern]
            return list(manual_pattern)
        if not self.features.auto_invalidation_enabled:
            return []
        if not is_write_statement(statement):
            return []
        return self.patterns_for_table(extract_write_table(statement))

    def patterns_for_table(self, table: str | None) -> list[str]:
        """Configured patterns for table, else the defaults; [] for no table."""
        if not table:
            return []
        configured = self.features.patterns_for(table)
        if configured:
            return list(configured)
        return default_patterns(table)

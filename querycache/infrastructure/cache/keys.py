"""Cache key builders. Single place for key format (DRY).

Keys derived from a statement look like:

    users:all                     no WHERE clause
    users:id:3f2a9c1b             detailed: compared columns + parameter hash
    orders:status:user_id:9d0e... columns are sorted, so WHERE order is irrelevant
    users:3f2a9c1b                simple: table + parameter hash
    query:7be1c2d4                no recognizable table, hash of the statement

Derivation is a heuristic (see querycache.shared.utils.sql) and never
raises: anything it cannot read falls back to a hash-based key.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from typing import Any

from querycache.core.constants import (
    CACHE_KEY_ALL,
    CACHE_KEY_SEP,
    CACHE_PREFIX_QUERY,
    DETAILED_KEY_MAX_PARAMS,
    KEY_HASH_LENGTH,
)
from querycache.domain.enums import KeyStrategy
from querycache.shared.utils.sql import (
    extract_column_names,
    extract_table_name,
    extract_where_conditions,
)


def canonical_json(value: Any) -> str:
    """Deterministic JSON: sorted keys, no spaces, non-JSON values stringified."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def short_hash(data: str) -> str:
    """First KEY_HASH_LENGTH hex chars of the MD5 digest of data."""
    return hashlib.md5(data.encode(), usedforsecurity=False).hexdigest()[:KEY_HASH_LENGTH]


def parameter_hash(parameters: Sequence[Any] | None) -> str:
    """Short hash of the parameter list; "all" when there are none."""
    if not parameters:
        return CACHE_KEY_ALL
    values = list(parameters)
    try:
        return short_hash(canonical_json(values))
    except (TypeError, ValueError):
        # mixed-type dict keys or circular references
        return short_hash(repr(values))


def namespace_key(key: str, namespace: str | None) -> str:
    """Prefix key with "{namespace}:" when a namespace is configured."""
    if not namespace:
        return key
    return f"{namespace}{CACHE_KEY_SEP}{key}"


class CacheKeyGenerator:
    """Derives cache keys from (statement, parameters).

    Stateless; one instance can be shared by every caller.
    """

    def generate(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        strategy: KeyStrategy | str = KeyStrategy.AUTO,
    ) -> str:
        """Return a cache key for statement and parameters.

        Args:
            statement: Parameterized SQL statement.
            parameters: Positional parameters bound to the statement.
            strategy: "auto" (default), "simple" or "detailed".

        Returns:
            Deterministic key; identical inputs always give identical keys.
        """
        strategy = KeyStrategy(strategy)
        if strategy is KeyStrategy.SIMPLE:
            return self.simple_key(statement, parameters)
        if strategy is KeyStrategy.DETAILED:
            return self.detailed_key(statement, parameters)
        if not parameters or len(parameters) <= DETAILED_KEY_MAX_PARAMS:
            return self.detailed_key(statement, parameters)
        return self.simple_key(statement, parameters)

    def detailed_key(self, statement: str, parameters: Sequence[Any] | None) -> str:
        """Table, sorted compared columns and parameter hash."""
        table = extract_table_name(statement)
        if not table:
            return self._statement_key(statement)
        conditions = extract_where_conditions(statement)
        if not conditions:
            return f"{table}{CACHE_KEY_SEP}{CACHE_KEY_ALL}"
        columns = extract_column_names(conditions)
        if not columns:
            return f"{table}{CACHE_KEY_SEP}{parameter_hash(parameters)}"
        return CACHE_KEY_SEP.join([table, *columns, parameter_hash(parameters)])

    def simple_key(self, statement: str, parameters: Sequence[Any] | None) -> str:
        """Table and parameter hash only."""
        table = extract_table_name(statement)
        if not table:
            return self._statement_key(statement)
        return f"{table}{CACHE_KEY_SEP}{parameter_hash(parameters)}"

    @staticmethod
    def _statement_key(statement: str) -> str:
        return f"{CACHE_PREFIX_QUERY}{CACHE_KEY_SEP}{short_hash(statement)}"

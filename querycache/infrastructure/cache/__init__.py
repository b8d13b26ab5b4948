"""Cache: resilient Redis service, key derivation, and invalidation planning.

CacheService uses querycache.core.config; key format is in keys.py (DRY).
"""

from querycache.infrastructure.cache.cache_protocol import CacheProtocol
from querycache.infrastructure.cache.connection_state import (
    ConnectionStateMachine,
    reconnect_delay,
)
from querycache.infrastructure.cache.invalidation import (
    InvalidationPlanner,
    default_patterns,
)
from querycache.infrastructure.cache.keys import (
    CacheKeyGenerator,
    canonical_json,
    namespace_key,
    parameter_hash,
)
from querycache.infrastructure.cache.redis_cache import CacheJSONEncoder, CacheService

__all__ = [
    "CacheJSONEncoder",
    "CacheKeyGenerator",
    "CacheProtocol",
    "CacheService",
    "ConnectionStateMachine",
    "InvalidationPlanner",
    "canonical_json",
    "default_patterns",
    "namespace_key",
    "parameter_hash",
    "reconnect_delay",
]

"""Domain enumerations for the query cache layer."""

from enum import Enum


class ConnectionState(str, Enum):
    """Cache-store connection readiness.

    Only READY lets cache operations run without waiting.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"


class KeyStrategy(str, Enum):
    """How a cache key is derived from a statement and its parameters.

    AUTO picks DETAILED for up to three parameters and SIMPLE above that.
    """

    AUTO = "auto"
    SIMPLE = "simple"
    DETAILED = "detailed"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid strategy values as strings."""
        return [strategy.value for strategy in cls]


class TransactionState(str, Enum):
    """Lifecycle of one backing-store transaction."""

    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

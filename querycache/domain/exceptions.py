"""Domain exceptions for the query cache layer.

Backing-store errors (driver and SQLAlchemy exceptions) are deliberately not
wrapped: they propagate to the caller unchanged so error codes and messages
survive. Cache-store errors never reach callers at all; CacheService turns
them into fallback values. The classes here cover the remaining cases.
"""

from typing import Any


class QueryCacheException(Exception):
    """Base exception for all query cache errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. argument name, timeout).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and HTTP error bodies."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentException(QueryCacheException, ValueError):
    """Raised synchronously when a caller passes an unusable argument."""

    def __init__(self, message: str, argument: str | None = None) -> None:
        """Initialize with message and optional argument name.

        Args:
            message: Description of the problem.
            argument: Name of the offending argument.
        """
        details = {"argument": argument} if argument else {}
        super().__init__(message, "INVALID_ARGUMENT", details)


class CacheKeyRequiredException(InvalidArgumentException):
    """Raised when no cache key was supplied and automatic keys are disabled."""

    def __init__(self) -> None:
        super().__init__(
            "A cache key is required. Enable automatic keys with "
            "CORE_AUTO_FEATURES=true or QueryCache.configure(auto_key_enabled=True).",
            "key",
        )
        self.error_code = "CACHE_KEY_REQUIRED"


class QueryTimeoutException(QueryCacheException):
    """Raised when a backing-store call exceeds an explicit timeout."""

    def __init__(self, timeout: float) -> None:
        """Initialize with the timeout that was exceeded.

        Args:
            timeout: Timeout in seconds.
        """
        super().__init__(
            f"Query timeout exceeded ({timeout}s)",
            "QUERY_TIMEOUT",
            {"timeout": timeout},
        )


class ShutdownRejectedException(QueryCacheException):
    """Raised for any backing-store call issued after shutdown began."""

    def __init__(self, operation: str = "query") -> None:
        super().__init__(
            f"Shutting down, cannot process new {operation}",
            "SHUTTING_DOWN",
            {"operation": operation},
        )


class ConfigurationException(QueryCacheException):
    """Raised at startup when required settings are missing or invalid."""

    def __init__(self, errors: list[str]) -> None:
        """Initialize with every configuration problem found.

        Args:
            errors: One message per missing or invalid setting.
        """
        lines = "\n".join(f"  - {error}" for error in errors)
        super().__init__(
            f"Missing or invalid configuration:\n{lines}",
            "CONFIGURATION_ERROR",
            {"errors": errors},
        )

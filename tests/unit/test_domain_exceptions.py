"""Tests for domain exceptions (error_code, message, details)."""

from querycache.domain.exceptions import (
    CacheKeyRequiredException,
    ConfigurationException,
    InvalidArgumentException,
    QueryCacheException,
    QueryTimeoutException,
    ShutdownRejectedException,
)


def test_base_exception_default_error_code() -> None:
    """Base QueryCacheException uses class name as error_code when not provided."""
    exc = QueryCacheException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "QueryCacheException"
    assert exc.details == {}
    assert exc.to_dict() == {
        "error": "QueryCacheException",
        "message": "Something failed",
        "details": {},
    }


def test_invalid_argument_is_a_value_error() -> None:
    exc = InvalidArgumentException("page_size must be positive", "page_size")
    assert isinstance(exc, ValueError)
    assert exc.error_code == "INVALID_ARGUMENT"
    assert exc.details == {"argument": "page_size"}


def test_cache_key_required() -> None:
    exc = CacheKeyRequiredException()
    assert isinstance(exc, InvalidArgumentException)
    assert exc.error_code == "CACHE_KEY_REQUIRED"
    assert "CORE_AUTO_FEATURES" in exc.message


def test_query_timeout() -> None:
    exc = QueryTimeoutException(2.5)
    assert exc.message == "Query timeout exceeded (2.5s)"
    assert exc.details == {"timeout": 2.5}


def test_shutdown_rejected() -> None:
    exc = ShutdownRejectedException("transactions")
    assert exc.error_code == "SHUTTING_DOWN"
    assert "transactions" in exc.message


def test_configuration_lists_every_problem() -> None:
    exc = ConfigurationException(["DB_HOST is required", "DB_NAME is required"])
    assert exc.details == {"errors": ["DB_HOST is required", "DB_NAME is required"]}
    assert "  - DB_HOST is required" in exc.message

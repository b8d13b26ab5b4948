"""Bounded retry for backing-store calls.

Only transient connectivity failures are retried (refused, timed out, host
not found, connection lost, too many connections); everything else, such
as syntax errors or constraint violations, propagates on the first attempt.
Delays grow as base_delay * 2**attempt.

An explicit timeout bounds each attempt. When it expires the in-flight
coroutine is cancelled, so its pooled connection goes back to the pool
through the normal release path.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import socket
from collections.abc import Awaitable, Callable
from typing import TypeVar

import pymysql

from querycache.core.constants import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    MYSQL_ERROR_CODES,
    TRANSIENT_ERROR_CODES,
)
from querycache.domain.exceptions import QueryTimeoutException, ShutdownRejectedException

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _own_error_code(exc: BaseException) -> str | None:
    """Code carried by exc itself, without following wrappers."""
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in TRANSIENT_ERROR_CODES:
        return code
    if isinstance(exc, pymysql.err.MySQLError):
        if exc.args and isinstance(exc.args[0], int):
            return MYSQL_ERROR_CODES.get(exc.args[0])
        return None
    if isinstance(exc, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(exc, OSError) and exc.errno:
        return errno.errorcode.get(exc.errno)
    return None


def transient_error_code(exc: BaseException) -> str | None:
    """Return the transient code for exc, or None if it must not be retried.

    Follows SQLAlchemy's DBAPIError.orig and the __cause__ chain so driver
    errors are recognized however they were wrapped.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        code = _own_error_code(current)
        if code in TRANSIENT_ERROR_CODES:
            return code
        current = getattr(current, "orig", None) or current.__cause__
    return None


class RetryExecutor:
    """Runs backing-store calls with bounded retry, timeout and shutdown gate."""

    def __init__(
        self,
        retries: int = DEFAULT_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    ) -> None:
        self.retries = retries
        self.base_delay = base_delay
        self._shutting_down = False

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def shutdown(self) -> None:
        """Reject every call from now on."""
        self._shutting_down = True

    def ensure_accepting(self, operation: str = "queries") -> None:
        """Raise ShutdownRejectedException once shutdown has started."""
        if self._shutting_down:
            raise ShutdownRejectedException(operation)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        retries: int | None = None,
        base_delay: float | None = None,
        timeout: float | None = None,
    ) -> T:
        """Await fn(), retrying transient failures.

        Args:
            fn: Zero-argument coroutine factory; called once per attempt.
            retries: Total attempts (default: executor setting).
            base_delay: First backoff delay in seconds (default: executor setting).
            timeout: Optional per-attempt limit in seconds.

        Raises:
            ShutdownRejectedException: Shutdown has started.
            QueryTimeoutException: An attempt exceeded timeout.
            Exception: The last error once attempts are exhausted, or the
                first non-transient error.
        """
        attempts = max(1, self.retries if retries is None else retries)
        delay_base = self.base_delay if base_delay is None else base_delay
        for attempt in range(attempts):
            self.ensure_accepting()
            try:
                if timeout is not None:
                    return await self._run_with_timeout(fn, timeout)
                return await fn()
            except Exception as exc:
                code = transient_error_code(exc)
                if code is None or attempt == attempts - 1:
                    raise
                delay = delay_base * (2**attempt)
                logger.warning(
                    "Transient backing-store error %s (attempt %s/%s), retrying in %.2fs",
                    code,
                    attempt + 1,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    @staticmethod
    async def _run_with_timeout(fn: Callable[[], Awaitable[T]], timeout: float) -> T:
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await fn()
        except TimeoutError:
            if deadline.expired():
                raise QueryTimeoutException(timeout) from None
            raise

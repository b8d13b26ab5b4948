"""Cache-store connection state machine.

One mutable field (state) driven by four signals that mirror the client
lifecycle:

    on_connect  -> CONNECTING   (a connection attempt started)
    on_ready    -> READY        (the server answered)
    on_error    -> DISCONNECTED (an attempt or a command failed on the socket)
    on_end      -> DISCONNECTED (the connection was closed)

Waiters block on an asyncio.Condition until READY or their timeout, so a
burst of cache calls during an outage does not pile up listeners.
"""

import asyncio
import logging
import random

from querycache.domain.enums import ConnectionState

logger = logging.getLogger(__name__)


def reconnect_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
) -> float:
    """Seconds to wait before reconnect attempt number attempt (1-based).

    Exponential in the attempt, capped at max_delay, plus uniform jitter.
    There is no attempt limit.
    """
    exponent = max(attempt - 1, 0)
    delay = min(base_delay * (2**exponent), max_delay)
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return delay


class ConnectionStateMachine:
    """Tracks cache-store readiness and lets callers wait for READY."""

    def __init__(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._condition = asyncio.Condition()
        self.last_error: BaseException | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    async def _transition(self, state: ConnectionState) -> None:
        async with self._condition:
            if state is not self._state:
                logger.debug("Cache connection %s -> %s", self._state.value, state.value)
            self._state = state
            self._condition.notify_all()

    async def on_connect(self) -> None:
        await self._transition(ConnectionState.CONNECTING)

    async def on_ready(self) -> None:
        self.last_error = None
        await self._transition(ConnectionState.READY)

    async def on_error(self, error: BaseException) -> None:
        self.last_error = error
        await self._transition(ConnectionState.DISCONNECTED)

    async def on_end(self) -> None:
        await self._transition(ConnectionState.DISCONNECTED)

    async def wait_until_ready(self, timeout: float) -> bool:
        """Wait up to timeout seconds for READY.

        Returns:
            True when READY, False when the timeout elapsed first.
        """
        if self.is_ready:
            return True
        try:
            async with asyncio.timeout(timeout):
                async with self._condition:
                    await self._condition.wait_for(lambda: self.is_ready)
        except TimeoutError:
            return False
        return True

    async def wait_until_not_ready(self) -> None:
        """Wait until the state leaves READY."""
        async with self._condition:
            await self._condition.wait_for(lambda: not self.is_ready)

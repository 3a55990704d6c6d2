"""
Circuit breaker shared by the segment workers of one native download, so a
failing server is not hammered by every connection at once.
"""

import asyncio
import logging
import time
from enum import Enum

log = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised on entry while connections are paused."""

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class CircuitBreaker:
    """
    Counts consecutive failed requests across all workers of a download.

    After `failure_threshold` of them in a row the circuit opens and every
    worker backs off for `recovery_timeout` seconds. The next request after
    that is a probe: `success_threshold` successes close the circuit again,
    a failure reopens it.

    Usage::

        async with breaker:
            await fetch()
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30,
        success_threshold: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_successes = 0
        self._opened_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _cooldown_left(self) -> float:
        return max(0.0, self._opened_at + self.recovery_timeout - time.monotonic())

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()
        self._consecutive_failures = 0
        self._probe_successes = 0

    async def __aenter__(self):
        async with self._lock:
            if self._state is CircuitState.OPEN:
                remaining = self._cooldown_left()
                if remaining > 0:
                    raise CircuitBreakerError(
                        "Circuit is open, connections are paused.",
                        retry_after=remaining,
                    )
                log.info(
                    "[yellow]Server cooled down, retrying connections.[/yellow]"
                )
                self._state = CircuitState.HALF_OPEN
                self._probe_successes = 0
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        # A cancelled request says nothing about the server
        if exc_type is asyncio.CancelledError:
            return False

        async with self._lock:
            if exc_type is None:
                self._consecutive_failures = 0
                if self._state is CircuitState.HALF_OPEN:
                    self._probe_successes += 1
                    if self._probe_successes >= self.success_threshold:
                        log.info(
                            "[green]Server recovered, resuming all connections.[/green]"
                        )
                        self._state = CircuitState.CLOSED
                return False

            if self._state is CircuitState.HALF_OPEN:
                log.warning(
                    "[yellow]Server still failing, pausing connections again.[/yellow]"
                )
                self._trip()
            elif self._state is CircuitState.CLOSED:
                self._consecutive_failures += 1
                if self._consecutive_failures >= self.failure_threshold:
                    log.warning(
                        f"[yellow]{self._consecutive_failures} consecutive failures, "
                        f"pausing all connections for "
                        f"{self.recovery_timeout:.0f}s.[/yellow]"
                    )
                    self._trip()
        return False

"""Circuit breaker guarding the market data API."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Breaker states."""
    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, serve cache or fallback data
    HALF_OPEN = "HALF_OPEN"  # Testing recovery with real requests


@dataclass
class CircuitStatus:
    """Snapshot of breaker counters for status reporting."""
    state: CircuitState
    failure_count: int
    success_count: int
    seconds_since_failure: Optional[float]


class CircuitBreaker:
    """
    Three-state circuit breaker.

    CLOSED counts failures and opens at failure_threshold. OPEN rejects
    requests until reset_timeout has passed since the last failure, after
    which the next state read reports HALF_OPEN. HALF_OPEN closes after
    success_threshold consecutive successes and reopens on any failure.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the cool-down elapsed."""
        if (
            self._state == CircuitState.OPEN
            and self._clock() - self._last_failure_time >= self.reset_timeout
        ):
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0
            logger.info("Circuit breaker entering HALF_OPEN state - testing recovery")
        return self._state

    def allow_request(self) -> bool:
        """Whether a real upstream call may be attempted."""
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        """Record a successful upstream call."""
        state = self.state
        if state == CircuitState.HALF_OPEN:
            self._success_count += 1
            logger.info(
                f"API success in HALF_OPEN state ({self._success_count}/{self.success_threshold})"
            )
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._success_count = 0
                logger.info("Circuit breaker CLOSED - API recovered")
        elif state == CircuitState.CLOSED and self._failure_count > 0:
            logger.info(f"API recovered - resetting failure count (was {self._failure_count})")
            self._failure_count = 0

    def record_failure(self, error: Exception = None) -> None:
        """Record a failed upstream call."""
        state = self.state
        self._last_failure_time = self._clock()
        self._failure_count += 1

        logger.warning(
            f"API failure {self._failure_count}/{self.failure_threshold}"
            + (f" - {error}" if error else "")
        )

        if state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._success_count = 0
            logger.error("Circuit breaker reopened - recovery failed")
        elif state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.error(
                f"Circuit breaker OPEN - API unavailable (will retry in {self.reset_timeout:.0f}s)"
            )

    def half_open(self) -> None:
        """Move an open circuit to HALF_OPEN ahead of the cool-down."""
        if self._state == CircuitState.OPEN:
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0
            logger.info("Moving to HALF_OPEN - will test with real requests")

    def status(self) -> CircuitStatus:
        """Get breaker counters for debugging."""
        since_failure = None
        if self._last_failure_time is not None:
            since_failure = self._clock() - self._last_failure_time
        return CircuitStatus(
            state=self.state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            seconds_since_failure=since_failure,
        )

"""Circuit breaker for gateway calls.

The poll scheduler keeps one breaker per keyword, so a keyword whose
searches keep failing (quota exhausted, API outage) stops hammering the
API until ``recovery_timeout`` has elapsed, while other keywords keep
polling normally.

Usage:
    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0)
    try:
        videos = await breaker.call(youtube.search, "jazz", 10)
    except CircuitOpenError:
        ...  # skip this tick
"""

import enum
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit breaker {name} is OPEN (retry in {retry_after:.1f}s)")
        self.retry_after = retry_after


class CircuitBreaker:
    """CLOSED → OPEN → HALF_OPEN → CLOSED state machine around an async callable.

    - CLOSED: calls pass through; consecutive failures are counted.
    - OPEN: calls are rejected with CircuitOpenError until
      ``recovery_timeout`` seconds have passed since the last failure.
    - HALF_OPEN: exactly one probe call is let through. Success closes the
      circuit, failure re-opens it. Concurrent callers are rejected while
      the probe runs.

    Args:
        failure_threshold: Consecutive failures before opening.
        recovery_timeout: Seconds to wait before a recovery probe.
        name: Label used in logs and errors.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "circuit_breaker",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def _before_call(self) -> None:
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - self._opened_at
            if elapsed < self._recovery_timeout:
                raise CircuitOpenError(self._name, self._recovery_timeout - elapsed)
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker %s: OPEN → HALF_OPEN (recovery probe)", self._name)

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise CircuitOpenError(self._name, 0.0)
            self._probe_in_flight = True

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute ``fn`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open (or a probe is running).
        """
        self._before_call()
        try:
            result = await fn(*args, **kwargs)
        except BaseException:
            # Cancellation of a probe must not leave the breaker stuck half-open
            self._record_failure()
            raise
        finally:
            self._probe_in_flight = False

        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker %s: HALF_OPEN → CLOSED (probe succeeded)", self._name)
        self.reset()
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state == CircuitState.HALF_OPEN:
            self._open()
            logger.warning("Circuit breaker %s: HALF_OPEN → OPEN (probe failed)", self._name)
        elif self._consecutive_failures >= self._failure_threshold:
            self._open()
            logger.warning(
                "Circuit breaker %s: CLOSED → OPEN after %d failures",
                self._name, self._consecutive_failures,
            )

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

# Area: Shared
"""
epyc_engine._shared.resilience — Retry policy and circuit breaker
=================================================================

One reusable policy object is applied at every gateway boundary
(scheduler, notifier). Errors are classified as transient or not:
transient failures are retried with exponential backoff up to a bounded
number of attempts, everything else surfaces on the first failure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from ..errors import InfrastructureError, RetryExhaustedError

logger = logging.getLogger("epyc_engine.shared.resilience")

T = TypeVar("T")

# Error codes that indicate a temporary condition on the far side
TRANSIENT_CODES = frozenset({
    "ETIMEDOUT",
    "ECONNRESET",
    "ECONNREFUSED",
    "ENOTFOUND",
    "EAI_AGAIN",
    "RATE_LIMITED",
    "SERVICE_UNAVAILABLE",
    "INTERNAL_SERVER_ERROR",
})


def is_transient(error: BaseException) -> bool:
    """Default error classification used by RetryPolicy."""
    if isinstance(error, InfrastructureError):
        return error.transient
    if getattr(error, "code", None) in TRANSIENT_CODES:
        return True
    return isinstance(error, (TimeoutError, ConnectionError))


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Stops calling a failing dependency for a recovery period.

    CLOSED counts consecutive failures and opens at ``failure_threshold``.
    OPEN rejects calls until ``recovery_timeout`` seconds have passed, then
    moves to HALF_OPEN, which lets ``half_open_max_calls`` trial calls
    through: one success closes the circuit, one failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_max_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self.state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._half_open_calls = 0

    def before_call(self) -> None:
        """Raise if the circuit does not allow a call right now."""
        if self.state == CircuitState.OPEN:
            if self._clock() - self._opened_at < self.recovery_timeout:
                raise InfrastructureError(
                    self.name, "circuit open", transient=False, code="CIRCUIT_OPEN"
                )
            logger.info("Circuit %s half-open", self.name)
            self.state = CircuitState.HALF_OPEN
            self._half_open_calls = 0
        if self.state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.half_open_max_calls:
                raise InfrastructureError(
                    self.name, "circuit half-open, trial calls exhausted",
                    transient=False, code="CIRCUIT_OPEN",
                )
            self._half_open_calls += 1

    def record_success(self) -> None:
        if self.state != CircuitState.CLOSED:
            logger.info("Circuit %s closed", self.name)
        self.state = CircuitState.CLOSED
        self._failures = 0

    def record_failure(self) -> None:
        self._failures += 1
        if self.state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            logger.warning(
                "Circuit %s opened after %d failures", self.name, self._failures
            )
            self.state = CircuitState.OPEN
            self._opened_at = self._clock()


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff for calls across the infrastructure boundary.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay in seconds before the second attempt
        max_delay: Upper bound for any single delay
        multiplier: Growth factor between consecutive delays
        classify: Returns True when an error is worth retrying
        sleep: Injected for tests
        breaker: Optional circuit breaker consulted before every attempt
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    classify: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    breaker: Optional[CircuitBreaker] = None

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` under the policy.

        Raises:
            RetryExhaustedError: Transient failures on every attempt
            Exception: The original error when it is not transient
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            if self.breaker is not None:
                self.breaker.before_call()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if self.breaker is not None:
                    self.breaker.record_failure()
                if not self.classify(e):
                    logger.error("%s failed (not retryable): %s", operation, e)
                    raise
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    operation, attempt, self.max_attempts, delay, e,
                )
                self.sleep(delay)
                continue
            if self.breaker is not None:
                self.breaker.record_success()
            return result

        raise RetryExhaustedError(operation, self.max_attempts, last_error)

"""
Circuit Breaker Pattern Implementation.

Prevents cascading failures by stopping calls to failing services.

State Machine:
    CLOSED -> OPEN -> HALF_OPEN -> CLOSED
           |                    |
           +--------------------+

- CLOSED: Normal operation, counting failures inside the monitoring period
- OPEN: Blocking all calls, waiting for timeout
- HALF_OPEN: One trial call decides between CLOSED and OPEN
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from threading import Lock
from typing import Any, Awaitable, Callable, Deque, Optional, TypeVar

from brale_core.exceptions import BraleError
from brale_core.monitoring import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitBreakerState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking calls
    HALF_OPEN = "half_open"  # Testing recovery


_STATE_GAUGE_VALUES = {
    CircuitBreakerState.CLOSED: 0,
    CircuitBreakerState.OPEN: 1,
    CircuitBreakerState.HALF_OPEN: 2,
}


@dataclass
class CircuitBreakerConfig:
    """
    Circuit breaker configuration.

    Attributes:
        failure_threshold: Failures within monitoring_period before opening
        timeout: Seconds to stay OPEN before admitting a trial call
        monitoring_period: Sliding window (seconds) in which failures count
        success_threshold: Trial successes needed to close from half-open
        half_open_max_calls: Calls admitted concurrently in half-open
        expected_exceptions: Exception types that count as failures
    """

    failure_threshold: int = 5
    timeout: float = 60.0
    monitoring_period: float = 30.0
    success_threshold: int = 1
    half_open_max_calls: int = 1
    expected_exceptions: tuple = (Exception,)


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascading failures.

    The circuit breaker monitors for failures and stops calling a failing
    service to give it time to recover. While OPEN, calls fail fast with a
    BraleError of kind ``circuit_open`` and the operation is not invoked.

    Example:
        breaker = CircuitBreaker("brale_api")

        try:
            result = await breaker.execute(client.get, "/accounts")
        except BraleError as e:
            if e.kind == ErrorKind.CIRCUIT_OPEN:
                return fallback_value
            raise
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Unique name for this circuit breaker
            config: Configuration (uses defaults if not provided)
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        # State
        self._state = CircuitBreakerState.CLOSED
        self._failures: Deque[float] = deque()
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0

        # Thread safety
        self._lock = Lock()

        # Statistics
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0
        self._total_rejections = 0
        self._state_changes = 0

        metrics.circuit_breaker_state.labels(breaker=name).set(0)

    @property
    def state(self) -> CircuitBreakerState:
        """Get current state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Failures counted toward the threshold."""
        with self._lock:
            self._prune_failures()
            return len(self._failures)

    @property
    def last_failure_time(self) -> Optional[float]:
        return self._last_failure_time

    async def execute(
        self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """
        Execute async operation with circuit breaker protection.

        Args:
            operation: Async callable to execute
            *args: Positional arguments for operation
            **kwargs: Keyword arguments for operation

        Returns:
            Result from operation

        Raises:
            BraleError: kind ``circuit_open`` if the circuit is open
            Exception: Any exception from the operation
        """
        with self._lock:
            self._total_calls += 1

            if not self._can_attempt():
                self._total_rejections += 1
                metrics.circuit_breaker_rejections_total.labels(
                    breaker=self.name
                ).inc()
                self._prune_failures()
                raise BraleError.circuit_open(self.name, len(self._failures))

            if self._state == CircuitBreakerState.HALF_OPEN:
                self._half_open_calls += 1

        # Execute operation (outside lock to avoid blocking)
        try:
            result = await operation(*args, **kwargs)
        except self.config.expected_exceptions:
            self._on_failure()
            raise
        except BaseException:
            self._release_half_open_slot()
            raise

        self._on_success()
        return result

    def wrap(
        self, operation: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """Return operation wrapped with this breaker."""

        @wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(operation, *args, **kwargs)

        return wrapper

    def _can_attempt(self) -> bool:
        """
        Check if we can attempt a call.

        Returns:
            True if call should be attempted
        """
        if self._state == CircuitBreakerState.CLOSED:
            return True

        if self._state == CircuitBreakerState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
                return True
            return False

        if self._state == CircuitBreakerState.HALF_OPEN:
            return self._half_open_calls < self.config.half_open_max_calls

        return False

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to try half-open."""
        if self._opened_at is None:
            return False
        return self._clock() - self._opened_at >= self.config.timeout

    def _prune_failures(self) -> None:
        """Drop failures older than the monitoring period."""
        horizon = self._clock() - self.config.monitoring_period
        while self._failures and self._failures[0] < horizon:
            self._failures.popleft()

    def _release_half_open_slot(self) -> None:
        # Cancellation is neither success nor failure; free the trial slot
        with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._half_open_calls = max(0, self._half_open_calls - 1)

    def _on_success(self) -> None:
        """Handle successful call."""
        with self._lock:
            self._total_successes += 1

            if self._state == CircuitBreakerState.CLOSED:
                self._failures.clear()

            elif self._state == CircuitBreakerState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition_to_closed()

    def _on_failure(self) -> None:
        """Handle failed call."""
        with self._lock:
            now = self._clock()
            self._total_failures += 1
            self._last_failure_time = now
            self._failures.append(now)

            if self._state == CircuitBreakerState.CLOSED:
                self._prune_failures()
                if len(self._failures) >= self.config.failure_threshold:
                    self._transition_to_open()

            elif self._state == CircuitBreakerState.HALF_OPEN:
                # Any failure in half-open goes back to open
                self._transition_to_open()

    def _set_state(self, state: CircuitBreakerState) -> None:
        previous = self._state
        self._state = state
        self._state_changes += 1
        metrics.circuit_breaker_state.labels(breaker=self.name).set(
            _STATE_GAUGE_VALUES[state]
        )
        log = logger.warning if state == CircuitBreakerState.OPEN else logger.info
        log(
            f"Circuit breaker '{self.name}': {previous.value} -> {state.value}"
        )

    def _transition_to_open(self) -> None:
        """Transition to OPEN state."""
        self._opened_at = self._clock()
        self._success_count = 0
        self._half_open_calls = 0
        self._set_state(CircuitBreakerState.OPEN)

    def _transition_to_half_open(self) -> None:
        """Transition to HALF_OPEN state."""
        self._success_count = 0
        self._half_open_calls = 0
        self._set_state(CircuitBreakerState.HALF_OPEN)

    def _transition_to_closed(self) -> None:
        """Transition to CLOSED state."""
        self._failures.clear()
        self._success_count = 0
        self._half_open_calls = 0
        self._opened_at = None
        self._last_failure_time = None
        self._set_state(CircuitBreakerState.CLOSED)

    def reset(self) -> None:
        """
        Manually reset circuit breaker to CLOSED state.

        Useful for administrative control or testing.
        """
        with self._lock:
            self._transition_to_closed()

    def trip(self) -> None:
        """
        Manually trip circuit breaker to OPEN state.

        Useful for administrative control or testing.
        """
        with self._lock:
            now = self._clock()
            self._failures = deque([now] * self.config.failure_threshold)
            self._last_failure_time = now
            self._transition_to_open()

    def get_stats(self) -> dict:
        """
        Get circuit breaker statistics.

        Returns:
            Dictionary with statistics
        """
        with self._lock:
            self._prune_failures()
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": len(self._failures),
                "success_count": self._success_count,
                "total_calls": self._total_calls,
                "total_failures": self._total_failures,
                "total_successes": self._total_successes,
                "total_rejections": self._total_rejections,
                "state_changes": self._state_changes,
                "config": {
                    "failure_threshold": self.config.failure_threshold,
                    "timeout": self.config.timeout,
                    "monitoring_period": self.config.monitoring_period,
                    "success_threshold": self.config.success_threshold,
                    "half_open_max_calls": self.config.half_open_max_calls,
                },
            }


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
]

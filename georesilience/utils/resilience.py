"""
Circuit breaker utilities for resource-keyed fault tolerance.

This module provides:
- CircuitBreaker state machine for one resource key
- CircuitBreakerRegistry holding exactly one breaker per key
- CircuitBreakerOpenError raised when a breaker rejects a call
"""

import threading
import time
from typing import Callable, Dict, Optional

from georesilience.models.retry import CircuitBreakerOptions, CircuitState, CircuitStatus
from georesilience.utils.logging import get_logger, log_circuit_transition

logger = get_logger(__name__)


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker rejects a call."""

    def __init__(self, resource_key: str, state: CircuitState, message: str):
        super().__init__(message)
        self.resource_key = resource_key
        self.state = state


class CircuitBreaker:
    """
    Circuit breaker pattern implementation for one resource key.

    The circuit breaker prevents cascading failures by:
    - Counting consecutive failures for the resource
    - Opening the circuit (rejecting requests) when failure threshold is reached
    - Admitting a limited number of probe calls after the reset timeout (half-open)
    - Closing the circuit when enough probes succeed

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Service is failing, requests are rejected immediately
    - HALF_OPEN: Testing if service recovered, limited requests allowed

    Args:
        resource_key: Name of the governed dependency
        options: Thresholds (failure_threshold, reset_timeout, half_open_requests)
        clock: Monotonic time source in seconds
        on_open: Called with (resource_key, failures) whenever the circuit opens

    The breaker itself is not thread-safe; CircuitBreakerRegistry serializes access.
    """

    def __init__(
        self,
        resource_key: str,
        options: Optional[CircuitBreakerOptions] = None,
        clock: Callable[[], float] = time.monotonic,
        on_open: Optional[Callable[[str, int], None]] = None
    ):
        self.resource_key = resource_key
        self.options = options or CircuitBreakerOptions()
        self._clock = clock
        self._on_open = on_open

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.opened_at: Optional[float] = None
        self.half_open_successes = 0
        self.half_open_attempts = 0

    def acquire(self) -> None:
        """
        Admit one call or reject it.

        Raises:
            CircuitBreakerOpenError: If circuit is open or half-open probes are used up
        """
        if self.state == CircuitState.OPEN:
            elapsed = self._clock() - (self.opened_at or 0.0)
            if elapsed >= self.options.reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
                self.half_open_successes = 0
                self.half_open_attempts = 0
            else:
                raise CircuitBreakerOpenError(
                    self.resource_key,
                    self.state,
                    f"Service temporarily unavailable: {self.resource_key}. "
                    f"Will retry after {self.options.reset_timeout}s timeout."
                )

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_attempts >= self.options.half_open_requests:
                raise CircuitBreakerOpenError(
                    self.resource_key,
                    self.state,
                    f"Service not yet ready: {self.resource_key} "
                    f"(half-open probe limit {self.options.half_open_requests} reached)"
                )
            self.half_open_attempts += 1

    def record_success(self) -> None:
        """Record successful call."""
        if self.state == CircuitState.HALF_OPEN:
            self.half_open_successes += 1
            if self.half_open_successes >= self.options.half_open_requests:
                self._transition(CircuitState.CLOSED)
                self.failure_count = 0
                self.half_open_successes = 0
                self.half_open_attempts = 0
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def record_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            self._open()
        elif self.state == CircuitState.CLOSED:
            if self.failure_count >= self.options.failure_threshold:
                self._open()

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        if self.state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self.failure_count = 0
        self.half_open_successes = 0
        self.half_open_attempts = 0
        self.opened_at = None

    def status(self) -> CircuitStatus:
        return CircuitStatus(
            resource_key=self.resource_key,
            state=self.state,
            failures=self.failure_count,
            is_open=self.state == CircuitState.OPEN,
        )

    def _open(self) -> None:
        self._transition(CircuitState.OPEN)
        self.opened_at = self._clock()
        self.half_open_successes = 0
        self.half_open_attempts = 0
        if self._on_open is not None:
            self._on_open(self.resource_key, self.failure_count)

    def _transition(self, new_state: CircuitState) -> None:
        log_circuit_transition(
            logger,
            resource_key=self.resource_key,
            from_state=self.state.value,
            to_state=new_state.value,
            failures=self.failure_count
        )
        self.state = new_state


class CircuitBreakerRegistry:
    """
    Lazily created circuit breakers, one per resource key.

    All reads and writes go through a lock so concurrent callers sharing a
    key never lose failure counter updates.
    """

    def __init__(
        self,
        options: Optional[CircuitBreakerOptions] = None,
        clock: Callable[[], float] = time.monotonic,
        on_open: Optional[Callable[[str, int], None]] = None
    ):
        self.options = options or CircuitBreakerOptions()
        self._clock = clock
        self._on_open = on_open
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def _get(self, key: str) -> CircuitBreaker:
        breaker = self._breakers.get(key)
        if breaker is None:
            breaker = CircuitBreaker(key, self.options, self._clock, self._on_open)
            self._breakers[key] = breaker
        return breaker

    def acquire(self, key: str) -> None:
        with self._lock:
            self._get(key).acquire()

    def record_success(self, key: str) -> None:
        with self._lock:
            self._get(key).record_success()

    def record_failure(self, key: str) -> None:
        with self._lock:
            self._get(key).record_failure()

    def reset(self, key: str) -> None:
        with self._lock:
            self._get(key).reset()

    def status(self, key: str) -> CircuitStatus:
        """
        Read a breaker's state without changing it.

        Unknown keys report a fresh closed breaker without registering one.
        """
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                return CircuitStatus(
                    resource_key=key,
                    state=CircuitState.CLOSED,
                    failures=0,
                    is_open=False,
                )
            return breaker.status()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._breakers)

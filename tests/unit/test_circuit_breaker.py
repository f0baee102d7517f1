"""
Unit tests for the circuit breaker state machine.
"""

import pytest

from georesilience.models.retry import CircuitBreakerOptions, CircuitState
from georesilience.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitBreakerRegistry,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    options = CircuitBreakerOptions(failure_threshold=3, reset_timeout=10.0, half_open_requests=2)
    return CircuitBreaker("sync-api", options, clock=clock)


def open_breaker(breaker):
    for _ in range(breaker.options.failure_threshold):
        breaker.acquire()
        breaker.record_failure()


def test_starts_closed(breaker):
    """Test a fresh breaker is closed and admits calls."""
    breaker.acquire()

    status = breaker.status()
    assert status.state == CircuitState.CLOSED
    assert status.failures == 0
    assert status.is_open is False


def test_opens_at_threshold(breaker):
    """Test the breaker opens after failure_threshold consecutive failures."""
    breaker.record_failure()
    breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED

    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(CircuitBreakerOpenError) as exc_info:
        breaker.acquire()
    assert "temporarily unavailable" in str(exc_info.value)
    assert exc_info.value.state == CircuitState.OPEN


def test_success_resets_failure_count(breaker):
    """Test that a success while closed clears consecutive failures."""
    breaker.record_failure()
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 1


def test_half_open_after_reset_timeout(breaker, clock):
    """Test open -> half_open is checked at admission time."""
    open_breaker(breaker)

    clock.advance(5)
    with pytest.raises(CircuitBreakerOpenError):
        breaker.acquire()

    clock.advance(5)
    # Status is a pure read; the transition happens on admission
    assert breaker.status().state == CircuitState.OPEN
    breaker.acquire()
    assert breaker.state == CircuitState.HALF_OPEN


def test_half_open_closes_after_successes(breaker, clock):
    """Test half_open -> closed after half_open_requests successes."""
    open_breaker(breaker)
    clock.advance(10)

    breaker.acquire()
    breaker.record_success()
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.acquire()
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


def test_half_open_failure_reopens(breaker, clock):
    """Test that any failure in half_open returns to open."""
    open_breaker(breaker)
    clock.advance(10)

    breaker.acquire()
    breaker.record_failure()

    assert breaker.state == CircuitState.OPEN
    assert breaker.opened_at == clock.now
    with pytest.raises(CircuitBreakerOpenError):
        breaker.acquire()


def test_half_open_limits_probes(breaker, clock):
    """Test that only half_open_requests probes are admitted."""
    open_breaker(breaker)
    clock.advance(10)

    breaker.acquire()
    breaker.acquire()

    with pytest.raises(CircuitBreakerOpenError) as exc_info:
        breaker.acquire()
    assert "not yet ready" in str(exc_info.value)
    assert exc_info.value.state == CircuitState.HALF_OPEN


def test_reset_forces_closed(breaker):
    """Test manual reset."""
    open_breaker(breaker)

    breaker.reset()

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0
    breaker.acquire()


def test_on_open_callback(clock):
    """Test the on_open callback receives key and failure count."""
    opened = []
    breaker = CircuitBreaker(
        "uploads",
        CircuitBreakerOptions(failure_threshold=2),
        clock=clock,
        on_open=lambda key, failures: opened.append((key, failures)),
    )

    breaker.record_failure()
    breaker.record_failure()

    assert opened == [("uploads", 2)]


def test_registry_one_breaker_per_key(clock):
    """Test that keys are isolated and status does not register keys."""
    registry = CircuitBreakerRegistry(CircuitBreakerOptions(failure_threshold=1), clock=clock)

    status = registry.status("unknown")
    assert status.state == CircuitState.CLOSED
    assert registry.keys() == []

    registry.record_failure("a")
    assert registry.status("a").is_open is True
    assert registry.status("b").is_open is False

    with pytest.raises(CircuitBreakerOpenError):
        registry.acquire("a")
    registry.acquire("b")

    registry.reset("a")
    registry.acquire("a")
    assert sorted(registry.keys()) == ["a", "b"]

"""Retry, circuit breaker and recovery data models."""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class RetryOptions(BaseModel):
    """
    Retry policy for one operation.

    Unset fields fall back to the retry manager defaults.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_retries: Optional[int] = None
    initial_delay: Optional[float] = None
    max_delay: Optional[float] = None
    backoff_factor: Optional[float] = None
    timeout: Optional[float] = None
    retry_condition: Optional[Callable[[Any, int], bool]] = None
    on_retry: Optional[Callable[[Any, int], None]] = None

    def backoff_delay(self, attempt_index: int) -> float:
        """
        Delay before the retry following the zero-based attempt index.

        Args:
            attempt_index: Zero-based index of the attempt that just failed

        Returns:
            min(initial_delay * backoff_factor ** attempt_index, max_delay)
        """
        return min(
            self.initial_delay * (self.backoff_factor ** attempt_index),
            self.max_delay
        )


class CircuitBreakerOptions(BaseModel):
    """Circuit breaker thresholds."""

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    half_open_requests: int = 3


class CircuitStatus(BaseModel):
    """Snapshot of one breaker."""

    resource_key: str
    state: CircuitState
    failures: int
    is_open: bool


class RetryQueueEntry(BaseModel):
    """A deferred, fire-and-forget retry job."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    operation: Callable[[], Awaitable[Any]]
    options: RetryOptions
    attempts: int = 0
    last_error: Optional[Any] = None
    next_retry_time: float


class QueueStatus(BaseModel):
    """Deferred retry queue contents."""

    size: int
    operations: list[str]


class RecoveryContext(BaseModel):
    """Input handed to recovery strategies."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: Any  # ResilienceError
    attempts: int
    last_attempt_time: Optional[float] = None

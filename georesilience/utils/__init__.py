"""
Utility modules for the resilience layer.
"""

from georesilience.utils.logging import (
    get_logger,
    setup_logging,
    LogContext,
    log_error_record,
    log_circuit_transition,
    log_retry_attempt,
    log_error_with_context,
)
from georesilience.utils.metrics import (
    MetricsCollector,
    track_attempt,
    emit_metric,
)
from georesilience.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitBreakerRegistry,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "log_error_record",
    "log_circuit_transition",
    "log_retry_attempt",
    "log_error_with_context",
    "MetricsCollector",
    "track_attempt",
    "emit_metric",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitBreakerRegistry",
]

"""
Error-handling and resilience core for a mobile geolocation SDK.

Failures are normalized into ResilienceError, dispatched through
ErrorManager, retried by RetryManager behind per-resource circuit breakers
and recovered by RecoveryStrategies.
"""

__version__ = "1.0.0"

from georesilience.errors import (
    ResilienceError,
    create_error,
    is_resilience_error,
    normalize,
)
from georesilience.models import (
    CircuitState,
    ErrorContext,
    ErrorKind,
    ErrorSeverity,
    RecoveryContext,
    RetryOptions,
)
from georesilience.services import (
    ErrorManager,
    EventBus,
    RecoveryStrategies,
    Resilience,
    RetryManager,
    get_resilience,
    initialize_error_handling,
    retry,
    with_auto_recovery,
)

__all__ = [
    "__version__",
    "ResilienceError",
    "create_error",
    "is_resilience_error",
    "normalize",
    "CircuitState",
    "ErrorContext",
    "ErrorKind",
    "ErrorSeverity",
    "RecoveryContext",
    "RetryOptions",
    "ErrorManager",
    "EventBus",
    "RecoveryStrategies",
    "Resilience",
    "RetryManager",
    "get_resilience",
    "initialize_error_handling",
    "retry",
    "with_auto_recovery",
]

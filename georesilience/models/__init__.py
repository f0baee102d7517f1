"""Data models for the geo SDK resilience layer."""

from .context import (
    Breadcrumb,
    DatabaseContext,
    FullErrorContext,
    LastKnownLocation,
    LocationContext,
    NetworkContext,
    SystemInfo,
)
from .error import (
    ErrorContext,
    ErrorKind,
    ErrorRecord,
    ErrorSeverity,
    RecoveryPolicy,
    UserMessage,
)
from .report import ErrorReport, ErrorStatistics
from .retry import (
    CircuitBreakerOptions,
    CircuitState,
    CircuitStatus,
    QueueStatus,
    RecoveryContext,
    RetryOptions,
    RetryQueueEntry,
)

__all__ = [
    # Taxonomy models
    "ErrorKind",
    "ErrorSeverity",
    "ErrorContext",
    "RecoveryPolicy",
    "UserMessage",
    "ErrorRecord",
    # Dispatch models
    "ErrorReport",
    "ErrorStatistics",
    # Debug context models
    "Breadcrumb",
    "SystemInfo",
    "LastKnownLocation",
    "LocationContext",
    "NetworkContext",
    "DatabaseContext",
    "FullErrorContext",
    # Retry models
    "CircuitState",
    "CircuitBreakerOptions",
    "CircuitStatus",
    "RetryOptions",
    "RetryQueueEntry",
    "QueueStatus",
    "RecoveryContext",
]

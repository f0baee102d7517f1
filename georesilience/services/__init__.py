"""Resilience services package."""

from georesilience.services.events import EventBus
from georesilience.services.error_manager import (
    DefaultErrorHandlers,
    ErrorManager,
    ErrorReporter,
)
from georesilience.services.retry_manager import RetryManager, retry
from georesilience.services.recovery import (
    RecoveryStrategies,
    ServiceStatus,
    check_network_connectivity,
    with_auto_recovery,
)
from georesilience.services.error_context import (
    ErrorContextManager,
    ErrorDebugger,
    get_error_context,
    log_breadcrumb,
    log_debug,
    log_error,
    log_info,
    log_warning,
)
from georesilience.services.reporters import (
    BaseErrorReporter,
    CompositeErrorReporter,
    LoggingErrorReporter,
    create_error_reporter,
)
from georesilience.services.resilience import (
    Resilience,
    get_resilience,
    initialize_error_handling,
)

__all__ = [
    'EventBus',
    'DefaultErrorHandlers',
    'ErrorManager',
    'ErrorReporter',
    'RetryManager',
    'retry',
    'RecoveryStrategies',
    'ServiceStatus',
    'check_network_connectivity',
    'with_auto_recovery',
    'ErrorContextManager',
    'ErrorDebugger',
    'get_error_context',
    'log_breadcrumb',
    'log_debug',
    'log_error',
    'log_info',
    'log_warning',
    'BaseErrorReporter',
    'CompositeErrorReporter',
    'LoggingErrorReporter',
    'create_error_reporter',
    'Resilience',
    'get_resilience',
    'initialize_error_handling'
]

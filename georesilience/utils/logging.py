"""
Structured logging utilities with JSON formatting and context injection.

This module provides structured logging capabilities with:
- JSON formatted log output for machine-readable logs
- Context injection (error_kind, severity, operation, resource_key) via LoggerAdapter
- Standardized log fields across the dispatcher, retry manager and strategies
- Integration with Python's standard logging module
"""

import logging
import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional, MutableMapping
from logging import LogRecord


# Context fields promoted to the top level of each JSON log line
PROMOTED_FIELDS = ("error_kind", "severity", "operation", "resource_key", "retry_id")

_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with standard fields:
    - timestamp: ISO 8601 formatted timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - error_kind / severity / operation / resource_key / retry_id when supplied
    - context: Any other extra fields
    - error: Exception details (when exc_info is set)
    """

    def format(self, record: LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in PROMOTED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in PROMOTED_FIELDS:
                extra_fields[key] = value

        if extra_fields:
            log_data["context"] = extra_fields

        if record.exc_info:
            log_data["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack_trace": "".join(traceback.format_exception(*record.exc_info))
            }

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName
        }

        return json.dumps(log_data, default=str)


class LogContext:
    """
    Context manager for adding temporary context to logs.

    Usage:
        with LogContext(logger, operation="upload", resource_key="sync-api"):
            logger.info("Retrying")  # Will include operation and resource_key
    """

    def __init__(self, logger: logging.LoggerAdapter, **context: Any):
        self.logger = logger
        self.context = context
        self.old_extra = None

    def __enter__(self) -> logging.LoggerAdapter:
        self.old_extra = self.logger.extra.copy() if self.logger.extra else {}
        self.logger.extra = {**self.old_extra, **self.context}
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.old_extra is not None:
            self.logger.extra = self.old_extra


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that injects context fields into all log records.

    Explicit ``extra`` passed at the call site wins over adapter context.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        """
        Process log message and inject context.

        Args:
            msg: Log message
            kwargs: Log kwargs

        Returns:
            Tuple of (message, kwargs) with context injected
        """
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextLoggerAdapter":
        """
        Create a new logger adapter with additional context.

        Args:
            **context: Additional context fields

        Returns:
            New logger adapter with merged context
        """
        new_extra = self.extra.copy()
        new_extra.update(context)
        return ContextLoggerAdapter(self.logger, new_extra)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str, **context: Any) -> ContextLoggerAdapter:
    """
    Get a context-aware logger for a module.

    Args:
        name: Logger name (typically __name__)
        **context: Initial context fields

    Returns:
        Context logger adapter

    Example:
        logger = get_logger(__name__, component="LocationService")
        logger.info("Starting tracking")  # Will include component
    """
    base_logger = logging.getLogger(name)
    return ContextLoggerAdapter(base_logger, context)


def log_error_record(
    logger: logging.LoggerAdapter,
    level: int,
    error: Any,
    verbose: bool = False
) -> None:
    """
    Log a normalized error on the given level.

    Args:
        logger: Logger to use
        level: Logging level for this record's severity tier
        error: ResilienceError being dispatched
        verbose: Include context, user message and stack in the log line
    """
    extra: Dict[str, Any] = {
        "error_kind": error.kind.value,
        "severity": error.severity.value,
        "operation": error.context.operation,
    }
    if verbose:
        extra["component"] = error.context.component
        extra["metadata"] = error.context.metadata
        extra["user_title"] = error.user_message.title

    logger.log(
        level,
        f"[{error.severity.value.upper()}] {error.kind.value}: {error.message}",
        extra=extra,
        exc_info=error if verbose and error.__traceback__ is not None else None,
    )


def log_circuit_transition(
    logger: logging.LoggerAdapter,
    resource_key: str,
    from_state: str,
    to_state: str,
    failures: int
) -> None:
    """
    Log a circuit breaker state change.

    Args:
        logger: Logger to use
        resource_key: Resource key governed by the breaker
        from_state: Previous state
        to_state: New state
        failures: Consecutive failure count at transition time
    """
    extra = {
        "resource_key": resource_key,
        "from_state": from_state,
        "to_state": to_state,
        "failures": failures,
    }

    if to_state == "open":
        logger.warning(f"Circuit breaker {resource_key}: {from_state} -> {to_state}", extra=extra)
    else:
        logger.info(f"Circuit breaker {resource_key}: {from_state} -> {to_state}", extra=extra)


def log_retry_attempt(
    logger: logging.LoggerAdapter,
    resource_key: str,
    attempt: int,
    total_attempts: int,
    delay: Optional[float] = None,
    error: Optional[str] = None
) -> None:
    """
    Log a failed attempt inside a retry loop.

    Args:
        logger: Logger to use
        resource_key: Resource key of the retried operation
        attempt: Attempt number (1-indexed)
        total_attempts: Maximum number of attempts
        delay: Backoff delay before the next attempt, if any
        error: Error message of the failed attempt
    """
    extra: Dict[str, Any] = {
        "resource_key": resource_key,
        "attempt": attempt,
        "total_attempts": total_attempts,
    }
    if delay is not None:
        extra["delay_seconds"] = round(delay, 3)
    if error is not None:
        extra["error"] = error

    if delay is not None:
        logger.warning(
            f"{resource_key} failed on attempt {attempt}/{total_attempts}. "
            f"Retrying in {delay:.1f}s...",
            extra=extra
        )
    else:
        logger.error(
            f"{resource_key} failed after {attempt}/{total_attempts} attempts",
            extra=extra
        )


def log_error_with_context(
    logger: logging.LoggerAdapter,
    message: str,
    error: BaseException,
    **context: Any
) -> None:
    """
    Log error with full stack trace and context.

    Args:
        logger: Logger to use
        message: Error message
        error: Exception object
        **context: Additional context fields
    """
    logger.error(
        message,
        extra=context,
        exc_info=(type(error), error, error.__traceback__)
    )

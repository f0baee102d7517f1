"""
Error Manager component.

Single entry point for failures raised anywhere in the SDK. Normalizes
them, keeps a bounded history, runs handler chains, falls back to the
recovery strategy registry and forwards to an injectable reporter.
"""

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Union

from georesilience.config import Settings, settings as default_settings
from georesilience.errors import ContextLike, ResilienceError, coerce_context, normalize
from georesilience.models.error import ErrorContext, ErrorKind, ErrorSeverity
from georesilience.models.report import ErrorReport, ErrorStatistics
from georesilience.models.retry import RecoveryContext
from georesilience.services.events import EventBus
from georesilience.utils.logging import get_logger, log_error_record

logger = get_logger(__name__)

ErrorHandler = Callable[[ResilienceError], Union[bool, Awaitable[bool]]]


class ErrorReporter(ABC):
    """External sink for dispatched errors."""

    @abstractmethod
    async def report(self, error: ResilienceError, context: Optional[ErrorContext] = None) -> None:
        """Send one error to the sink."""


class ErrorManager:
    """
    Central error dispatcher.

    Args:
        config: Settings (history size, log verbosity)
        events: Event bus shared with the retry manager and strategies
        recovery: Recovery strategy registry, usually attached later with set_recovery()
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        recovery: Optional[Any] = None
    ):
        self.config = config or default_settings
        self.events = events or EventBus()
        self.max_history_size = self.config.error_history_size

        self._history: Deque[ErrorReport] = deque(maxlen=self.max_history_size)
        self._handlers: Dict[ErrorKind, List[ErrorHandler]] = {}
        self._global_handlers: List[ErrorHandler] = []
        self._reporter: Optional[ErrorReporter] = None
        self._recovery = recovery
        self._retry_attempts: Dict[str, int] = {}
        self._pending: Set[asyncio.Task] = set()

    def set_reporter(self, reporter: Optional[ErrorReporter]) -> None:
        """
        Set reporter for external logging/analytics.

        Reports are delivered in the background; drain() waits for them.

        Args:
            reporter: Reporter instance, or None to disable reporting
        """
        self._reporter = reporter

    def set_recovery(self, recovery: Any) -> None:
        """
        Attach the recovery strategy registry.

        Args:
            recovery: Object with an async execute(RecoveryContext) -> bool
        """
        self._recovery = recovery

    def register_handler(self, kind: ErrorKind, handler: ErrorHandler) -> None:
        """
        Register error handler for a specific kind.

        Args:
            kind: Error kind the handler applies to
            handler: Callable returning True when it handled the error
        """
        self._handlers.setdefault(ErrorKind(kind), []).append(handler)

    def register_global_handler(self, handler: ErrorHandler) -> None:
        self._global_handlers.append(handler)

    async def dispatch(self, failure: Any, context: ContextLike = None) -> ErrorReport:
        """
        Classify, record, handle and possibly recover from a failure.

        Args:
            failure: Any exception, string or ResilienceError
            context: Dispatch context (operation, metadata, ...)

        Returns:
            The ErrorReport appended to history
        """
        error = normalize(failure, context)
        report = ErrorReport(
            error=error,
            dispatch_context=coerce_context(context) if context is not None else None,
        )

        self._history.append(report)

        self.events.emit("error", error)

        self._log_error(error)

        if self._reporter is not None and error.severity != ErrorSeverity.LOW:
            self._schedule_report(error, report.dispatch_context or error.context)

        report.handled = await self._run_handlers(self._handlers.get(error.kind, []), error, "Error handler")

        if not report.handled:
            report.handled = await self._run_handlers(self._global_handlers, error, "Global error handler")

        if not report.handled and error.is_retryable():
            report.recovered = await self._attempt_recovery(error, report)

        if not report.handled and not report.recovered:
            self.events.emit("unhandledError", error)

        return report

    def _schedule_report(self, error: ResilienceError, context: ErrorContext) -> None:
        task = asyncio.ensure_future(self._report(error, context))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for reporter deliveries still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _report(self, error: ResilienceError, context: ErrorContext) -> None:
        try:
            await self._reporter.report(error, context)
        except Exception as e:
            logger.error(
                f"Failed to report error: {e}",
                extra={"error_kind": error.kind.value},
                exc_info=True
            )

    async def _run_handlers(
        self,
        handlers: List[ErrorHandler],
        error: ResilienceError,
        label: str
    ) -> bool:
        for handler in list(handlers):
            try:
                result = handler(error)
                if inspect.isawaitable(result):
                    result = await result
                if result:
                    return True
            except Exception as e:
                logger.error(
                    f"{label} failed: {e}",
                    extra={"error_kind": error.kind.value},
                    exc_info=True
                )
        return False

    async def _attempt_recovery(self, error: ResilienceError, report: ErrorReport) -> bool:
        """
        Run recovery strategies within the error's retry budget.

        Attempts are counted per kind and operation until clear_history().
        """
        if self._recovery is None or not error.recovery.can_retry:
            return False

        operation = error.context.operation
        if operation is None and report.dispatch_context is not None:
            operation = report.dispatch_context.operation
        error_key = f"{error.kind.value}-{operation or 'unknown'}"

        max_retries = error.recovery.max_retries
        if max_retries is None:
            max_retries = self.config.retry_max_retries

        current = self._retry_attempts.get(error_key, 0)
        if current >= max_retries:
            self._retry_attempts.pop(error_key, None)
            return False

        attempts = current + 1
        self._retry_attempts[error_key] = attempts
        report.retry_count = attempts

        recovered = await self._recovery.execute(
            RecoveryContext(error=error, attempts=attempts, last_attempt_time=time.time())
        )

        if recovered:
            self._retry_attempts.pop(error_key, None)

        return recovered

    def _log_error(self, error: ResilienceError) -> None:
        verbose = self.config.is_development

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            log_error_record(logger, logging.ERROR, error, verbose)
        elif error.severity == ErrorSeverity.MEDIUM:
            log_error_record(logger, logging.WARNING, error, verbose)
        elif verbose:
            log_error_record(logger, logging.INFO, error, verbose)

    @property
    def history(self) -> List[ErrorReport]:
        """Reports in dispatch order, oldest first."""
        return list(self._history)

    def get_statistics(self, recent: int = 10) -> ErrorStatistics:
        """
        Get error statistics.

        Args:
            recent: Number of most recent reports to include

        Returns:
            Counts by kind and severity, recovery rate and recent reports
        """
        by_kind: Dict[str, int] = {}
        by_severity = {severity.value: 0 for severity in ErrorSeverity}
        recovered = 0
        critical = 0

        for report in self._history:
            error = report.error
            by_kind[error.kind.value] = by_kind.get(error.kind.value, 0) + 1
            by_severity[error.severity.value] += 1
            if error.severity == ErrorSeverity.CRITICAL:
                critical += 1
            if report.recovered:
                recovered += 1

        total = len(self._history)

        return ErrorStatistics(
            total_errors=total,
            errors_by_kind=by_kind,
            errors_by_severity=by_severity,
            recovery_rate=(recovered / total * 100) if total else 0.0,
            critical_errors=critical,
            recent_errors=self.get_recent_errors(recent),
        )

    def get_recent_errors(self, limit: int = 10) -> List[ErrorReport]:
        """Most recent reports, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._history))[:limit]

    def get_errors_by_kind(self, kind: ErrorKind) -> List[ErrorReport]:
        return [report for report in self._history if report.error.kind == kind]

    def get_critical_errors(self) -> List[ErrorReport]:
        return [report for report in self._history if report.error.is_critical()]

    def has_critical_errors(self, within_minutes: float = 5) -> bool:
        """
        Check if any critical errors occurred recently.

        Args:
            within_minutes: Look-back window

        Returns:
            True if a critical error was dispatched inside the window
        """
        threshold = time.time() - within_minutes * 60
        return any(
            report.error.is_critical() and report.timestamp > threshold
            for report in self._history
        )

    def clear_history(self) -> None:
        """Clear error history and recovery attempt bookkeeping."""
        self._history.clear()
        self._retry_attempts.clear()


class DefaultErrorHandlers:
    """Default handlers that turn common errors into collaborator signals."""

    def __init__(self, events: EventBus):
        self.events = events

    async def handle_permission_error(self, error: ResilienceError) -> bool:
        if error.kind != ErrorKind.PERMISSION_DENIED:
            return False
        self.events.emit("permissionRequired", {
            "type": "location",
            "message": error.user_message,
        })
        return True

    async def handle_database_error(self, error: ResilienceError) -> bool:
        if error.kind != ErrorKind.DATABASE_CORRUPTION:
            return False
        self.events.emit("databaseReset", {
            "reason": "corruption",
            "error": error,
        })
        return True

    async def handle_network_error(self, error: ResilienceError) -> bool:
        if error.kind != ErrorKind.NETWORK_ERROR:
            return False
        self.events.emit("queueForRetry", {
            "operation": error.context.operation,
            "error": error,
        })
        return True

    def register(self, manager: ErrorManager) -> None:
        """
        Register all default handlers on a manager.

        Args:
            manager: Error manager to register on
        """
        manager.register_handler(ErrorKind.PERMISSION_DENIED, self.handle_permission_error)
        manager.register_handler(ErrorKind.DATABASE_CORRUPTION, self.handle_database_error)
        manager.register_handler(ErrorKind.NETWORK_ERROR, self.handle_network_error)

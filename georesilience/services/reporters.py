"""
Error reporter implementations.

Reporters receive every dispatched error above LOW severity. Vendor SDK
integrations subclass BaseErrorReporter and implement send_report().
"""

import asyncio
import logging
from abc import abstractmethod
from typing import Any, List, Optional

from georesilience.errors import ResilienceError
from georesilience.models.error import ErrorContext, ErrorSeverity
from georesilience.services.error_context import ErrorDebugger
from georesilience.services.error_manager import ErrorReporter
from georesilience.utils.logging import get_logger

logger = get_logger(__name__)


class BaseErrorReporter(ErrorReporter):
    """
    Reporter with an enabled switch and failure isolation.

    Args:
        enabled: When False, report() is a no-op
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    async def report(self, error: ResilienceError, context: Optional[ErrorContext] = None) -> None:
        if not self.enabled:
            return

        try:
            await self.send_report(error, context)
        except Exception as e:
            logger.error(
                f"{type(self).__name__} failed to report error: {e}",
                extra={"error_kind": error.kind.value},
                exc_info=True
            )

    @abstractmethod
    async def send_report(self, error: ResilienceError, context: Optional[ErrorContext] = None) -> None:
        """Deliver one error to the sink."""


class LoggingErrorReporter(BaseErrorReporter):
    """
    Reporter writing to a logger, for development and log-shipping setups.

    Args:
        verbose: Log the full debug report instead of a one-line summary
        debugger: Report builder used in verbose mode
        logger_name: Target logger name
        enabled: When False, report() is a no-op
    """

    def __init__(
        self,
        verbose: bool = False,
        debugger: Optional[ErrorDebugger] = None,
        logger_name: str = "georesilience.reports",
        enabled: bool = True
    ):
        super().__init__(enabled=enabled)
        self.verbose = verbose
        self.debugger = debugger
        self.logger = get_logger(logger_name)

    async def send_report(self, error: ResilienceError, context: Optional[ErrorContext] = None) -> None:
        level = logging.ERROR if error.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL) else logging.WARNING
        extra = {
            "error_kind": error.kind.value,
            "severity": error.severity.value,
            "operation": context.operation if context else None,
        }

        if self.verbose:
            debugger = self.debugger or ErrorDebugger()
            self.logger.log(level, debugger.create_error_report(error), extra=extra)
            return

        message = f"[{error.kind.value}] {error.message}"
        if context is not None:
            extra["component"] = context.component
            extra["metadata"] = context.metadata
        self.logger.log(level, message, extra=extra)


class CompositeErrorReporter(BaseErrorReporter):
    """
    Fan out to several reporters; one failing reporter never blocks the others.

    Args:
        reporters: Initial reporters
    """

    def __init__(self, reporters: Optional[List[ErrorReporter]] = None, enabled: bool = True):
        super().__init__(enabled=enabled)
        self.reporters: List[ErrorReporter] = list(reporters or [])

    def add_reporter(self, reporter: ErrorReporter) -> None:
        self.reporters.append(reporter)

    def remove_reporter(self, reporter: ErrorReporter) -> bool:
        if reporter in self.reporters:
            self.reporters.remove(reporter)
            return True
        return False

    async def send_report(self, error: ResilienceError, context: Optional[ErrorContext] = None) -> None:
        reporters = list(self.reporters)
        results = await asyncio.gather(
            *(reporter.report(error, context) for reporter in reporters),
            return_exceptions=True
        )

        for reporter, result in zip(reporters, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Reporter {type(reporter).__name__} failed: {result}",
                    extra={"error_kind": error.kind.value},
                    exc_info=(type(result), result, result.__traceback__)
                )


def create_error_reporter(reporter_type: str, **options: Any) -> ErrorReporter:
    """
    Build a reporter by type name.

    Args:
        reporter_type: "logging" (alias "console") or "composite"
        **options: Constructor keyword arguments

    Returns:
        Reporter instance

    Raises:
        ValueError: If the type is unknown
    """
    reporter_type = reporter_type.lower()

    if reporter_type in ("logging", "console"):
        return LoggingErrorReporter(**options)
    if reporter_type == "composite":
        return CompositeErrorReporter(**options)

    raise ValueError(f"Unknown reporter type: {reporter_type}")

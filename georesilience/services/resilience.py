"""
Wiring for the resilience services.

Resilience owns one instance of each component, all sharing a single event
bus. get_resilience() returns a lazily created default instance; tests and
embedders build their own with explicit collaborators.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

from georesilience.config import Settings, settings as default_settings
from georesilience.services.error_context import (
    ErrorContextManager,
    ErrorDebugger,
    set_error_context,
)
from georesilience.services.error_manager import DefaultErrorHandlers, ErrorManager, ErrorReporter
from georesilience.services.events import EventBus
from georesilience.services.recovery import RecoveryStrategies, ServiceStatus
from georesilience.services.reporters import create_error_reporter
from georesilience.services.retry_manager import RetryManager
from georesilience.utils.logging import get_logger, setup_logging
from georesilience.utils.metrics import MetricsCollector

logger = get_logger(__name__)


class Resilience:
    """
    Container for the event bus, dispatcher, retry manager and recovery registry.

    Args:
        config: Settings shared by all components
        events: Event bus, created when omitted
        clock: Monotonic clock for circuit breakers and the retry queue
        sleep: Coroutine used for backoff and strategy delays
        connectivity_check: Network probe for the network recovery strategy
        service_status_check: Backend probe for the service recovery strategy
        auto_start: Start the retry queue scanner on first queued entry
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        connectivity_check: Optional[Callable[[], Awaitable[bool]]] = None,
        service_status_check: Optional[Callable[[], Awaitable[ServiceStatus]]] = None,
        auto_start: bool = True
    ):
        self.config = config or default_settings
        self.events = events or EventBus()
        self.metrics = MetricsCollector()

        self.error_manager = ErrorManager(config=self.config, events=self.events)
        self.retry_manager = RetryManager(
            self.error_manager,
            config=self.config,
            clock=clock,
            sleep=sleep,
            metrics=self.metrics,
            auto_start=auto_start,
        )
        self.recovery = RecoveryStrategies(
            self.events,
            retry_manager=self.retry_manager,
            config=self.config,
            sleep=sleep,
            connectivity_check=connectivity_check,
            service_status_check=service_status_check,
        )
        self.error_manager.set_recovery(self.recovery)

        self.context = ErrorContextManager(config=self.config)
        self.debugger = ErrorDebugger(self.context)

        self.default_handlers_registered = False
        self.default_strategies_registered = False

    def set_reporter(self, reporter: Optional[ErrorReporter]) -> None:
        self.error_manager.set_reporter(reporter)

    async def shutdown(self) -> None:
        """Stop the retry scanner and wait for pending dispatches, reports and async observers."""
        await self.retry_manager.stop()
        await self.error_manager.drain()
        await self.events.drain()


_resilience: Optional[Resilience] = None


def get_resilience() -> Resilience:
    """
    Get or create the global Resilience instance.

    Returns:
        Resilience instance
    """
    global _resilience
    if _resilience is None:
        _resilience = Resilience()
        set_error_context(_resilience.context)
    return _resilience


def initialize_error_handling(
    reporter: Optional[ErrorReporter] = None,
    resilience: Optional[Resilience] = None,
    register_default_handlers: bool = True,
    register_default_strategies: bool = True,
    configure_logging: bool = False,
    **options: Any
) -> Resilience:
    """
    Prepare a Resilience instance for use.

    Args:
        reporter: Reporter to attach; when omitted, settings.reporter_type selects one
        resilience: Instance to initialize, defaults to get_resilience()
        register_default_handlers: Register DefaultErrorHandlers on the dispatcher
        register_default_strategies: Register the built-in recovery strategies
        configure_logging: Call setup_logging() with the configured log level
        **options: Keyword arguments for create_error_reporter()

    Returns:
        The initialized instance
    """
    instance = resilience or get_resilience()

    if configure_logging:
        setup_logging(instance.config.log_level)

    if reporter is None and instance.config.reporter_type:
        reporter = create_error_reporter(instance.config.reporter_type, **options)
    if reporter is not None:
        instance.set_reporter(reporter)

    # Defaults are registered at most once per instance
    if register_default_handlers and not instance.default_handlers_registered:
        DefaultErrorHandlers(instance.events).register(instance.error_manager)
        instance.default_handlers_registered = True

    if register_default_strategies and not instance.default_strategies_registered:
        instance.recovery.register_default_strategies()
        instance.default_strategies_registered = True

    logger.info(
        "Error handling initialized",
        extra={
            "reporter": type(reporter).__name__ if reporter else None,
            "environment": instance.config.environment,
        }
    )
    return instance

"""
Recovery strategy registry.

Strategies are ordered per error kind; the first one that reports success
wins. Built-in strategies never touch collaborators directly: they emit
signals on the event bus ("adjustLocationSettings", "resetDatabase", ...)
that the owning collaborator acts on.
"""

import asyncio
import inspect
import time
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel

from georesilience.config import Settings, settings as default_settings
from georesilience.errors import ResilienceError, normalize
from georesilience.models.error import ErrorKind
from georesilience.models.retry import RecoveryContext, RetryOptions
from georesilience.services.events import EventBus
from georesilience.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

RecoveryFunction = Callable[[RecoveryContext], Union[bool, Awaitable[bool]]]


class ServiceStatus(BaseModel):
    """Result of a backend status probe."""

    available: bool = True
    in_maintenance: bool = False
    estimated_downtime: Optional[float] = None


async def check_network_connectivity(url: str, timeout: float) -> bool:
    """
    Probe connectivity with a lightweight HEAD request.

    Args:
        url: Endpoint expected to answer 2xx (e.g. a generate_204 URL)
        timeout: Request timeout in seconds

    Returns:
        True if the endpoint answered successfully
    """
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.head(url)
            return response.is_success
    except httpx.HTTPError as e:
        logger.debug(f"Connectivity check failed: {e}")
        return False


async def check_service_status() -> ServiceStatus:
    return ServiceStatus()


class RecoveryStrategies:
    """
    Ordered recovery strategies per error kind.

    Args:
        events: Event bus used for recovery signals
        retry_manager: Needed by the network strategy to queue deferred retries
        config: Settings for strategy wait times and probe endpoints
        sleep: Coroutine used for strategy delays
        connectivity_check: Async () -> bool network probe
        service_status_check: Async () -> ServiceStatus backend probe
    """

    def __init__(
        self,
        events: EventBus,
        retry_manager: Optional[Any] = None,
        config: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        connectivity_check: Optional[Callable[[], Awaitable[bool]]] = None,
        service_status_check: Optional[Callable[[], Awaitable[ServiceStatus]]] = None
    ):
        self.events = events
        self.retry_manager = retry_manager
        self.config = config or default_settings
        self._sleep = sleep
        self._connectivity_check = connectivity_check or (
            lambda: check_network_connectivity(
                self.config.connectivity_check_url,
                self.config.connectivity_check_timeout
            )
        )
        self._service_status_check = service_status_check or check_service_status
        self._strategies: Dict[ErrorKind, List[RecoveryFunction]] = {}

    def register_strategy(self, kind: ErrorKind, strategy: RecoveryFunction) -> None:
        """
        Register a recovery strategy for an error kind.

        Args:
            kind: Error kind
            strategy: Callable taking a RecoveryContext, returning True on recovery
        """
        self._strategies.setdefault(ErrorKind(kind), []).append(strategy)

    def strategies_for(self, kind: ErrorKind) -> List[RecoveryFunction]:
        return list(self._strategies.get(kind, []))

    async def execute(self, context: RecoveryContext) -> bool:
        """
        Execute recovery strategies for an error, first success wins.

        Args:
            context: Error, attempt count and last attempt time

        Returns:
            True if any strategy recovered
        """
        error = context.error
        strategies = self.strategies_for(error.kind)

        for strategy in strategies:
            name = getattr(strategy, "__name__", repr(strategy))
            try:
                recovered = strategy(context)
                if inspect.isawaitable(recovered):
                    recovered = await recovered
            except Exception as e:
                logger.error(
                    f"Recovery strategy {name} failed: {e}",
                    extra={"error_kind": error.kind.value},
                    exc_info=True
                )
                continue

            if recovered:
                logger.info(
                    f"Recovered from {error.kind.value} with {name}",
                    extra={"error_kind": error.kind.value, "attempts": context.attempts}
                )
                self.events.emit("recoverySuccess", {"error": error, "strategy": name})
                return True

        self.events.emit("recoveryFailed", {
            "error": error,
            "attempts": context.attempts,
            "strategies": len(strategies),
        })
        return False

    def register_default_strategies(self) -> None:
        """Register the built-in strategies."""
        self.register_strategy(ErrorKind.LOCATION_TIMEOUT, self.location_timeout_recovery)
        self.register_strategy(ErrorKind.PERMISSION_DENIED, self.permission_denied_recovery)
        self.register_strategy(ErrorKind.DATABASE_CORRUPTION, self.database_corruption_recovery)
        self.register_strategy(ErrorKind.NETWORK_ERROR, self.network_error_recovery)
        self.register_strategy(ErrorKind.SERVICE_NOT_AVAILABLE, self.service_unavailable_recovery)
        self.register_strategy(ErrorKind.BACKGROUND_SERVICE_ERROR, self.background_service_recovery)

    async def location_timeout_recovery(self, context: RecoveryContext) -> bool:
        """Step location accuracy down, then fall back to the last known fix."""
        if context.attempts == 1:
            self.events.emit("adjustLocationSettings", {"desired_accuracy": "balanced"})
            return True
        if context.attempts == 2:
            self.events.emit("adjustLocationSettings", {"desired_accuracy": "low"})
            return True
        if context.attempts == 3:
            self.events.emit("useLastKnownLocation")
            return True

        self.events.emit("locationUnavailable", {
            "error": context.error,
            "user_message": "Unable to determine location. Please check GPS settings.",
        })
        return False

    async def permission_denied_recovery(self, context: RecoveryContext) -> bool:
        """Ask the UI for permission and wait for a permissionGranted signal."""
        granted = asyncio.Event()
        listener = self.events.once("permissionGranted", lambda _payload: granted.set())

        self.events.emit("permissionRequired", {
            "permission": "location",
            "rationale": "Location permission is required for tracking functionality.",
            "error": context.error,
        })

        try:
            await asyncio.wait_for(granted.wait(), timeout=self.config.permission_wait_seconds)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            self.events.off("permissionGranted", listener)

    async def database_corruption_recovery(self, context: RecoveryContext) -> bool:
        """Export what can be saved, then reset and reinitialize storage."""
        try:
            self.events.emit("exportRecoverableData")
            await self._sleep(self.config.database_export_wait_seconds)

            self.events.emit("resetDatabase", {"reason": "corruption", "error": context.error})
            self.events.emit("reinitializeDatabase")
            return True
        except Exception as e:
            logger.error(f"Database recovery failed: {e}", exc_info=True)
            self.events.emit("factoryReset", {"reason": "database_corruption_unrecoverable"})
            return False

    async def network_error_recovery(self, context: RecoveryContext) -> bool:
        """Queue the operation while offline; back off while online."""
        error = context.error

        if not await self._connectivity_check():
            if self.retry_manager is None:
                return False

            operation = error.context.operation or "unknown"
            self.retry_manager.queue_for_retry(
                f"network-{operation}",
                self._retry_operation_signal(error),
                RetryOptions(
                    max_retries=10,
                    initial_delay=5.0,
                    retry_condition=lambda _error, _attempt: True,
                ),
            )
            return True

        if context.attempts < 3:
            await self._sleep(2 ** context.attempts)
            return True

        return False

    def _retry_operation_signal(self, error: ResilienceError) -> Callable[[], Awaitable[None]]:
        async def retry_operation() -> None:
            self.events.emit("retryOperation", {
                "operation": error.context.operation,
                "context": error.context,
            })
        return retry_operation

    async def service_unavailable_recovery(self, context: RecoveryContext) -> bool:
        """Wait out an open circuit unless the backend is in maintenance."""
        status = await self._service_status_check()

        if status.in_maintenance:
            self.events.emit("serviceMaintenance", {
                "estimated_time": status.estimated_downtime,
                "message": "Service is under maintenance. Please try again later.",
            })
            return False

        if context.attempts < 3:
            await self._sleep(min(context.attempts * 10, 60))
            return True

        if context.attempts == 3 and self.retry_manager is not None:
            metadata = context.error.context.metadata
            resource_key = metadata.get("resource_key") or context.error.context.operation or "default"
            self.retry_manager.reset_circuit(resource_key)
            return True

        return False

    async def background_service_recovery(self, context: RecoveryContext) -> bool:
        """Platform-specific steps to revive background location delivery."""
        platform = (context.error.context.platform or self.config.host_platform).lower()

        if platform == "android":
            signals = {
                1: "restartForegroundService",
                2: "checkBatteryOptimization",
                3: "requestBatteryOptimizationExemption",
            }
        elif platform == "ios":
            signals = {
                1: "reregisterBackgroundTasks",
                2: "enableSignificantLocationChanges",
            }
        else:
            return False

        signal = signals.get(context.attempts)
        if signal is None:
            return False

        self.events.emit(signal)
        return True


def with_auto_recovery(
    registry: RecoveryStrategies,
    kinds: Optional[Iterable[ErrorKind]] = None,
    max_attempts: int = 3
):
    """
    Wrap a coroutine function with recover-then-retry behaviour.

    On failure the error is normalized. If its kind is targeted (any kind
    when kinds is None) and attempts remain, the registry runs; a failed
    recovery re-raises immediately, a successful one retries the call.

    Args:
        registry: Recovery strategies to execute
        kinds: Error kinds to recover from
        max_attempts: Maximum calls of the wrapped function

    Example:
        @with_auto_recovery(registry, [ErrorKind.LOCATION_TIMEOUT])
        async def current_position():
            return await location_service.sample()
    """
    targets = frozenset(ErrorKind(kind) for kind in kinds) if kinds is not None else None

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Optional[ResilienceError] = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_error = normalize(e)

                    targeted = targets is None or last_error.kind in targets
                    if not targeted or attempt >= max_attempts - 1:
                        raise last_error

                    recovered = await registry.execute(RecoveryContext(
                        error=last_error,
                        attempts=attempt + 1,
                        last_attempt_time=time.time(),
                    ))
                    if not recovered:
                        raise last_error

            raise last_error

        return wrapper

    return decorator

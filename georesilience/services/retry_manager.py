"""
Retry Manager component.

Executes operations with bounded attempts, exponential backoff and a
per-attempt timeout, guarded by a circuit breaker per resource key. Also
owns the deferred retry queue and the background task that scans it.
"""

import asyncio
import inspect
import time
from functools import partial, wraps
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar

from georesilience.config import Settings, settings as default_settings
from georesilience.errors import ResilienceError, normalize
from georesilience.models.error import ErrorKind, ErrorSeverity
from georesilience.models.retry import (
    CircuitBreakerOptions,
    CircuitStatus,
    QueueStatus,
    RetryOptions,
    RetryQueueEntry,
)
from georesilience.services.error_manager import ErrorManager
from georesilience.utils.logging import get_logger, log_retry_attempt
from georesilience.utils.metrics import MetricsCollector, emit_metric, track_attempt
from georesilience.utils.resilience import CircuitBreakerOpenError, CircuitBreakerRegistry

logger = get_logger(__name__)

T = TypeVar('T')

DEFAULT_RESOURCE_KEY = "default"


def _default_retry_condition(error: ResilienceError, attempt: int) -> bool:
    return error.is_retryable()


async def _call_operation(operation: Callable[[], Any]) -> Any:
    """Await coroutine functions on the loop; run other callables on the default thread pool."""
    if inspect.iscoroutinefunction(operation):
        result = operation()
    else:
        result = await asyncio.to_thread(operation)
    if inspect.isawaitable(result):
        result = await result
    return result


def _consume_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned operation finished with error after timeout: {error}")


class RetryManager:
    """
    Retry executor, circuit breakers and deferred retry queue.

    Args:
        error_manager: Dispatcher receiving failures that exhaust their retries
        config: Settings providing default retry policy and breaker thresholds
        clock: Monotonic time source in seconds (breakers and queue)
        sleep: Coroutine used for backoff delays
        metrics: Attempt metrics collector
        auto_start: Start the queue scanner on first queue_for_retry() call
    """

    def __init__(
        self,
        error_manager: ErrorManager,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
        auto_start: bool = True
    ):
        self.config = config or default_settings
        self.error_manager = error_manager
        self.events = error_manager.events
        self.metrics = metrics or MetricsCollector()
        self.scan_interval = self.config.retry_queue_interval
        self.auto_start = auto_start

        self._clock = clock
        self._sleep = sleep

        self.default_options = RetryOptions(
            max_retries=self.config.retry_max_retries,
            initial_delay=self.config.retry_initial_delay,
            max_delay=self.config.retry_max_delay,
            backoff_factor=self.config.retry_backoff_factor,
            timeout=self.config.retry_timeout,
            retry_condition=_default_retry_condition,
            on_retry=None,
        )

        self.circuits = CircuitBreakerRegistry(
            CircuitBreakerOptions(
                failure_threshold=self.config.circuit_failure_threshold,
                reset_timeout=self.config.circuit_reset_timeout,
                half_open_requests=self.config.circuit_half_open_requests,
            ),
            clock=clock,
            on_open=self._on_circuit_open,
        )

        self._queue: Dict[str, RetryQueueEntry] = {}
        self._scanner: Optional[asyncio.Task] = None
        self._running = False
        self._pending: Set[asyncio.Task] = set()

    def resolve_options(self, options: Optional[RetryOptions] = None) -> RetryOptions:
        """
        Merge explicitly set option fields over the defaults.

        Args:
            options: Partial retry options

        Returns:
            Fully populated RetryOptions
        """
        if options is None:
            return self.default_options.model_copy()

        update = {
            name: getattr(options, name)
            for name in options.model_fields_set
            if getattr(options, name) is not None
        }
        return self.default_options.model_copy(update=update)

    async def with_retry(
        self,
        operation: Callable[[], Any],
        options: Optional[RetryOptions] = None,
        resource_key: str = DEFAULT_RESOURCE_KEY
    ) -> Any:
        """
        Execute operation with retry logic.

        The final error is dispatched in the background and raised at once.

        Args:
            operation: Zero-argument callable returning an awaitable (or a value)
            options: Retry policy overrides
            resource_key: Names the dependency whose circuit breaker guards the call

        Returns:
            The operation's result

        Raises:
            ResilienceError: SERVICE_NOT_AVAILABLE if the circuit rejects the call,
                otherwise the normalized error of the last failed attempt
        """
        opts = self.resolve_options(options)
        total_attempts = opts.max_retries + 1
        attempts_made = 0
        last_error: Optional[ResilienceError] = None

        for attempt in range(total_attempts):
            try:
                self.circuits.acquire(resource_key)
            except CircuitBreakerOpenError as e:
                self.metrics.record_rejection(resource_key)
                rejection = ResilienceError(
                    ErrorKind.SERVICE_NOT_AVAILABLE,
                    str(e),
                    severity=ErrorSeverity.HIGH,
                    context={
                        "operation": resource_key,
                        "metadata": {"resource_key": resource_key, "circuit_state": e.state.value},
                    },
                    original_error=e,
                    config=self.config,
                )
                if attempts_made == 0:
                    raise rejection
                last_error = rejection
                break

            attempts_made += 1
            try:
                async with track_attempt(self.metrics, resource_key):
                    result = await self._run_attempt(operation, opts.timeout, resource_key)
            except Exception as e:
                last_error = normalize(e, {"operation": resource_key})
                self.circuits.record_failure(resource_key)

                if attempt < opts.max_retries and self._should_retry(opts, last_error, attempt):
                    delay = opts.backoff_delay(attempt)
                    log_retry_attempt(
                        logger,
                        resource_key=resource_key,
                        attempt=attempt + 1,
                        total_attempts=total_attempts,
                        delay=delay,
                        error=last_error.message
                    )
                    await self._sleep(delay)
                    self._notify_retry(opts, last_error, attempt + 1)
                    continue
                break
            else:
                self.circuits.record_success(resource_key)
                if attempt > 0:
                    logger.info(
                        f"{resource_key} succeeded on attempt {attempt + 1}/{total_attempts}",
                        extra={"resource_key": resource_key}
                    )
                return result

        log_retry_attempt(
            logger,
            resource_key=resource_key,
            attempt=attempts_made,
            total_attempts=total_attempts,
            error=last_error.message
        )
        self._forward_final_error(last_error, {
            "operation": resource_key,
            "metadata": {
                "resource_key": resource_key,
                "final_attempt": True,
                "attempts": attempts_made,
            },
        })
        raise last_error

    async def _run_attempt(
        self,
        operation: Callable[[], Any],
        timeout: Optional[float],
        label: str
    ) -> Any:
        """
        Run one attempt, racing it against the timeout.

        Sync callables run in a worker thread so they race the timeout too.
        A timed-out operation is abandoned, not cancelled.
        """
        if not timeout or timeout <= 0:
            return await _call_operation(operation)

        task = asyncio.ensure_future(_call_operation(operation))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.add_done_callback(_consume_abandoned)
        raise ResilienceError(
            ErrorKind.OPERATION_TIMEOUT,
            f"Operation timed out after {timeout}s",
            context={"operation": label, "metadata": {"timeout": timeout}},
            config=self.config,
        )

    def _notify_retry(self, opts: RetryOptions, error: ResilienceError, attempt: int) -> None:
        if opts.on_retry is None:
            return
        try:
            opts.on_retry(error, attempt)
        except Exception as e:
            logger.error(f"on_retry callback failed: {e}", exc_info=True)

    def _should_retry(self, opts: RetryOptions, error: ResilienceError, attempt: int) -> bool:
        try:
            return bool(opts.retry_condition(error, attempt))
        except Exception as e:
            logger.error(f"retry_condition failed, not retrying: {e}", exc_info=True)
            return False

    def _forward_final_error(self, error: ResilienceError, context: Dict[str, Any]) -> None:
        """Dispatch the final error in the background; the caller never waits on recovery."""
        task = asyncio.ensure_future(self.error_manager.dispatch(error, context))
        self._pending.add(task)
        task.add_done_callback(self._finish_dispatch)

    def _finish_dispatch(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Failed to dispatch final retry error: {error}",
                exc_info=(type(error), error, error.__traceback__)
            )

    async def drain(self) -> None:
        """Wait for final-error dispatches still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_circuit_open(self, resource_key: str, failures: int) -> None:
        self.events.emit("circuitOpen", {"resource_key": resource_key, "failures": failures})
        emit_metric("circuit_open", 1, resource_key=resource_key, failures=failures)

    def get_circuit_status(self, resource_key: str) -> CircuitStatus:
        return self.circuits.status(resource_key)

    def reset_circuit(self, resource_key: str) -> None:
        """
        Force a circuit closed with its failure count cleared.

        Args:
            resource_key: Resource key to reset
        """
        self.circuits.reset(resource_key)

    def queue_for_retry(
        self,
        id: str,
        operation: Callable[[], Any],
        options: Optional[RetryOptions] = None
    ) -> None:
        """
        Queue operation for deferred, fire-and-forget retry.

        Re-queuing an existing id replaces the earlier entry.

        Args:
            id: Unique job id
            operation: Zero-argument callable returning an awaitable (or a value)
            options: Retry policy overrides
        """
        if id in self._queue:
            logger.info(f"Replacing queued retry {id}", extra={"retry_id": id})

        self._queue[id] = RetryQueueEntry(
            id=id,
            operation=operation,
            options=self.resolve_options(options),
            next_retry_time=self._clock(),
        )

        if self.auto_start:
            self._ensure_scanner()

    def cancel_retry(self, id: str) -> bool:
        """
        Cancel queued retry.

        Returns:
            True if an entry was queued under this id
        """
        return self._queue.pop(id, None) is not None

    def get_queue_status(self) -> QueueStatus:
        return QueueStatus(size=len(self._queue), operations=list(self._queue))

    async def process_retry_queue(self) -> int:
        """
        Run every queued entry whose retry time has come.

        Eligible entries are snapshotted up front; entries queued, replaced
        or cancelled while the scan is running are left alone.

        Returns:
            Number of entries processed
        """
        now = self._clock()
        due = [entry for entry in self._queue.values() if entry.next_retry_time <= now]
        processed = 0

        for entry in due:
            if self._queue.get(entry.id) is not entry:
                continue

            processed += 1
            try:
                result = await self._run_attempt(entry.operation, entry.options.timeout, entry.id)
            except Exception as e:
                await self._handle_queued_failure(entry, e)
                continue

            if self._queue.get(entry.id) is entry:
                del self._queue[entry.id]

            logger.info(f"Queued retry {entry.id} succeeded", extra={"retry_id": entry.id})
            self.events.emit("retrySuccess", {
                "id": entry.id,
                "attempts": entry.attempts + 1,
                "result": result,
            })

        return processed

    async def _handle_queued_failure(self, entry: RetryQueueEntry, failure: Exception) -> None:
        entry.attempts += 1
        entry.last_error = normalize(failure, {"operation": entry.id})

        if self._queue.get(entry.id) is not entry:
            logger.debug(f"Queued retry {entry.id} was cancelled while running", extra={"retry_id": entry.id})
            return

        opts = entry.options
        if entry.attempts <= opts.max_retries and self._should_retry(opts, entry.last_error, entry.attempts):
            delay = opts.backoff_delay(entry.attempts - 1)
            entry.next_retry_time = self._clock() + delay
            log_retry_attempt(
                logger,
                resource_key=entry.id,
                attempt=entry.attempts,
                total_attempts=opts.max_retries + 1,
                delay=delay,
                error=entry.last_error.message
            )
            self._notify_retry(opts, entry.last_error, entry.attempts)
            return

        del self._queue[entry.id]

        self.events.emit("retryFailed", {
            "id": entry.id,
            "attempts": entry.attempts,
            "error": entry.last_error,
        })

        self._forward_final_error(entry.last_error, {
            "operation": entry.id,
            "metadata": {"final_attempt": True, "attempts": entry.attempts},
        })

    def _ensure_scanner(self) -> None:
        if self._scanner is not None and not self._scanner.done():
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; retry queue scanner not started")
            return
        self.start()

    def start(self) -> None:
        """Start the background queue scanner on the running loop."""
        if self._scanner is not None and not self._scanner.done():
            return
        self._running = True
        self._scanner = asyncio.get_running_loop().create_task(self._scan_loop())
        logger.info(f"Retry queue scanner started (interval {self.scan_interval}s)")

    async def stop(self) -> None:
        """Stop the background queue scanner and wait for pending final-error dispatches."""
        self._running = False
        if self._scanner is not None:
            self._scanner.cancel()
            try:
                await self._scanner
            except asyncio.CancelledError:
                pass
            self._scanner = None
            logger.info("Retry queue scanner stopped")

        await self.drain()

    async def _scan_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.scan_interval)
            try:
                await self.process_retry_queue()
            except Exception as e:
                logger.error(f"Error processing retry queue: {e}", exc_info=True)


def retry(
    manager: RetryManager,
    options: Optional[RetryOptions] = None,
    resource_key: Optional[str] = None
):
    """
    Wrap a callable so every call goes through manager.with_retry().

    Sync callables run in a worker thread; the wrapped callable is always
    a coroutine function.

    Args:
        manager: Retry manager to execute with
        options: Retry policy overrides
        resource_key: Circuit breaker key (default: the callable's qualified name)

    Example:
        @retry(manager, RetryOptions(max_retries=2), "sync-api")
        async def upload_batch(batch):
            return await client.post(batch)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Awaitable[T]]:
        key = resource_key or func.__qualname__

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await manager.with_retry(partial(func, *args, **kwargs), options, key)

        return wrapper

    return decorator

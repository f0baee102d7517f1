"""
Event bus for outbound resilience signals.

Collaborators subscribe to named events ("error", "circuitOpen",
"permissionRequired", ...) to plug in remediation the core does not know
about. Delivery is fire-and-forget: observer failures are logged and never
reach the emitter. Coroutine observers are scheduled on the running loop.
"""

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

from georesilience.utils.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], Any]


class EventBus:
    """Per-event observer lists."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        """
        Subscribe to an event.

        Args:
            event: Event name
            listener: Callable receiving the event payload (sync or async)
        """
        self._listeners[event].append(listener)

    def once(self, event: str, listener: Listener) -> Listener:
        """
        Subscribe for a single delivery.

        Returns:
            The wrapper actually registered, usable with off()
        """
        def wrapper(payload: Any) -> Any:
            self.off(event, wrapper)
            return listener(payload)

        self.on(event, wrapper)
        return wrapper

    def off(self, event: str, listener: Listener) -> bool:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Optional[Any] = None) -> int:
        """
        Deliver an event to its current observers.

        Args:
            event: Event name
            payload: Event payload

        Returns:
            Number of observers notified
        """
        listeners = list(self._listeners.get(event, []))

        for listener in listeners:
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.error(
                    f"Listener for '{event}' failed: {e}",
                    extra={"event": event},
                    exc_info=True
                )

        return len(listeners)

    async def drain(self) -> None:
        """Wait for scheduled coroutine observers to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        self._listeners.clear()

    def _schedule(self, event: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop to deliver on
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"Dropped async listener for '{event}': no running event loop")
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finish(event, t))

    def _finish(self, event: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Async listener for '{event}' failed: {error}",
                extra={"event": event},
                exc_info=(type(error), error, error.__traceback__)
            )

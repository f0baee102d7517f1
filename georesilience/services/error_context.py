"""
Error context capture and debugging utilities.

Keeps a bounded trail of breadcrumbs plus the latest location, network and
database snapshots pushed by collaborators, and merges them into a
FullErrorContext when an error needs to be explained.
"""

import json
import platform
import time
import traceback
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from georesilience.config import Settings, settings as default_settings
from georesilience.errors import ResilienceError
from georesilience.models.context import (
    Breadcrumb,
    BreadcrumbLevel,
    DatabaseContext,
    FullErrorContext,
    LocationContext,
    NetworkContext,
    SystemInfo,
)
from georesilience.utils.logging import get_logger

logger = get_logger(__name__)

MAX_STACK_LINES = 20
REPORT_BREADCRUMBS = 10


class ErrorContextManager:
    """
    Captures and manages error context.

    Args:
        config: Settings providing breadcrumb_limit, host_platform and sdk_version
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.max_breadcrumbs = self.config.breadcrumb_limit

        self._breadcrumbs: Deque[Breadcrumb] = deque(maxlen=self.max_breadcrumbs)
        self._system_info: Optional[SystemInfo] = None
        self._location: Optional[LocationContext] = None
        self._network: Optional[NetworkContext] = None
        self._database: Optional[DatabaseContext] = None

    def capture_context(self, error: ResilienceError) -> FullErrorContext:
        """
        Capture full context for an error.

        Args:
            error: Normalized error

        Returns:
            The error's own context merged with current snapshots and breadcrumbs
        """
        base = error.context.model_dump(exclude={"original_error"})

        return FullErrorContext(
            **base,
            original_error=error.original_error,
            system=self.get_system_info(),
            location=self._location,
            network=self._network,
            database=self._database,
            stack_trace=self._parse_stack_trace(error),
            breadcrumbs=self.get_breadcrumbs(),
        )

    def add_breadcrumb(
        self,
        category: str,
        message: str,
        level: BreadcrumbLevel = "info",
        data: Optional[Any] = None
    ) -> Breadcrumb:
        crumb = Breadcrumb(
            timestamp=time.time(),
            category=category,
            message=message,
            level=level,
            data=data,
        )
        self._breadcrumbs.append(crumb)
        return crumb

    def get_breadcrumbs(self, limit: Optional[int] = None) -> List[Breadcrumb]:
        """Breadcrumbs oldest first, optionally only the last `limit`."""
        crumbs = list(self._breadcrumbs)
        if limit:
            return crumbs[-limit:]
        return crumbs

    def clear_breadcrumbs(self) -> None:
        self._breadcrumbs.clear()

    def update_system_info(self, **info: Any) -> None:
        current = self.get_system_info().model_dump()
        current.update(info)
        self._system_info = SystemInfo(**current)

    def update_location_context(self, **context: Any) -> None:
        current = self._location.model_dump() if self._location else {}
        current.update(context)
        self._location = LocationContext(**current)
        self.add_breadcrumb("location", "Location context updated", "info", context)

    def update_network_context(self, **context: Any) -> None:
        current = self._network.model_dump() if self._network else {}
        current.update(context)
        self._network = NetworkContext(**current)
        self.add_breadcrumb("network", "Network context updated", "info", context)

    def update_database_context(self, **context: Any) -> None:
        current = self._database.model_dump() if self._database else {}
        current.update(context)
        self._database = DatabaseContext(**current)
        self.add_breadcrumb("database", "Database context updated", "info", context)

    def get_system_info(self) -> SystemInfo:
        if self._system_info is None:
            self._system_info = SystemInfo(
                platform=self.config.host_platform,
                os_version=platform.release() or "unknown",
                python_version=platform.python_version(),
                sdk_version=self.config.sdk_version,
                device_model=platform.machine() or None,
            )
        return self._system_info

    def _parse_stack_trace(self, error: ResilienceError) -> List[str]:
        if error.__traceback__ is None:
            return []
        lines = traceback.format_exception(type(error), error, error.__traceback__)
        stripped = [line.strip() for chunk in lines for line in chunk.splitlines()]
        return [line for line in stripped if line][:MAX_STACK_LINES]


_error_context: Optional[ErrorContextManager] = None


def get_error_context() -> ErrorContextManager:
    """
    Get or create the global error context manager.

    Returns:
        ErrorContextManager instance
    """
    global _error_context
    if _error_context is None:
        _error_context = ErrorContextManager()
    return _error_context


def set_error_context(manager: Optional[ErrorContextManager]) -> None:
    global _error_context
    _error_context = manager


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _yes_no(value: Optional[bool]) -> str:
    return "Yes" if value else "No"


class ErrorDebugger:
    """
    Human-readable and exportable error reports.

    Args:
        context_manager: Source of context snapshots, defaults to the global one
    """

    def __init__(self, context_manager: Optional[ErrorContextManager] = None):
        self.context_manager = context_manager or get_error_context()

    def create_error_report(self, error: ResilienceError) -> str:
        """
        Create a detailed plain-text report for an error.

        Args:
            error: Normalized error

        Returns:
            Multi-line report with error details, environment and breadcrumbs
        """
        context = self.context_manager.capture_context(error)
        system = context.system

        lines = [
            "=== Geo SDK Error Report ===",
            f"Date: {datetime.now(timezone.utc).isoformat()}",
            "",
            "--- Error Details ---",
            f"Kind: {error.kind.value}",
            f"Message: {error.message}",
            f"Severity: {error.severity.value}",
            f"Timestamp: {_iso(error.timestamp)}",
            "",
            "--- User Message ---",
            f"Title: {error.user_message.title}",
            f"Message: {error.user_message.message}",
            f"Action: {error.user_message.action or 'None'}",
            "",
            "--- System Info ---",
            f"Platform: {system.platform} {system.os_version}",
            f"Python: {system.python_version}",
            f"App Version: {system.app_version or 'Unknown'}",
            f"SDK Version: {system.sdk_version}",
            f"Device Model: {system.device_model or 'Unknown'}",
            f"Is Emulator: {_yes_no(system.is_emulator)}",
            "",
            "--- Error Context ---",
            f"Operation: {context.operation or 'Unknown'}",
            f"Component: {context.component or 'Unknown'}",
            f"User ID: {context.user_id or 'Unknown'}",
        ]

        if context.location is not None:
            location = context.location
            lines.extend([
                "",
                "--- Location Context ---",
                f"Permission: {location.location_permission or 'Unknown'}",
                f"GPS Enabled: {_yes_no(location.gps_enabled)}",
                f"Network Enabled: {_yes_no(location.network_enabled)}",
                f"Mock Locations: {_yes_no(location.mock_locations_enabled)}",
            ])
            if location.last_known_location is not None:
                last = location.last_known_location
                lines.extend([
                    f"Last Location: {last.lat:.6f}, {last.lon:.6f}",
                    f"Last Update: {_iso(last.timestamp)}",
                ])

        if context.network is not None:
            network = context.network
            lines.extend([
                "",
                "--- Network Context ---",
                f"Connected: {_yes_no(network.is_connected)}",
                f"Type: {network.connection_type or 'Unknown'}",
                f"RTT: {network.rtt if network.rtt is not None else 'Unknown'} ms",
            ])

        if context.database is not None:
            database = context.database
            lines.extend([
                "",
                "--- Database Context ---",
                f"Initialized: {_yes_no(database.is_initialized)}",
                f"Encrypted: {_yes_no(database.is_encrypted)}",
                f"Records: {database.record_count if database.record_count is not None else 'Unknown'}",
                f"Last Operation: {database.last_operation or 'None'}",
            ])

        if context.metadata:
            lines.extend([
                "",
                "--- Additional Metadata ---",
                json.dumps(context.metadata, indent=2, default=str),
            ])

        if context.breadcrumbs:
            lines.extend(["", "--- Breadcrumbs ---"])
            for crumb in context.breadcrumbs[-REPORT_BREADCRUMBS:]:
                lines.append(f"[{_iso(crumb.timestamp)}] [{crumb.level}] {crumb.category}: {crumb.message}")
                if crumb.data is not None:
                    lines.append(f"  Data: {json.dumps(crumb.data, default=str)}")

        if context.stack_trace:
            lines.extend(["", "--- Stack Trace ---", *context.stack_trace])

        lines.extend(["", "=== End of Report ==="])
        return "\n".join(lines)

    def export_error(self, error: ResilienceError) -> Dict[str, Any]:
        """
        Export an error for external reporting.

        Returns:
            Dict with "error" (record), "context" (full context) and "report" (text)
        """
        context = self.context_manager.capture_context(error)

        return {
            "error": error.to_dict(),
            "context": json.loads(json.dumps(context.model_dump(exclude={"original_error"}), default=str)),
            "report": self.create_error_report(error),
        }


def log_breadcrumb(
    category: str,
    message: str,
    level: BreadcrumbLevel = "info",
    data: Optional[Any] = None
) -> Breadcrumb:
    """
    Add a breadcrumb to the global error context.

    Args:
        category: Area of the SDK (location, network, database, ...)
        message: What happened
        level: debug, info, warning or error
        data: Optional structured payload
    """
    return get_error_context().add_breadcrumb(category, message, level, data)


def log_debug(category: str, message: str, data: Optional[Any] = None) -> Breadcrumb:
    return log_breadcrumb(category, message, "debug", data)


def log_info(category: str, message: str, data: Optional[Any] = None) -> Breadcrumb:
    return log_breadcrumb(category, message, "info", data)


def log_warning(category: str, message: str, data: Optional[Any] = None) -> Breadcrumb:
    return log_breadcrumb(category, message, "warning", data)


def log_error(category: str, message: str, data: Optional[Any] = None) -> Breadcrumb:
    return log_breadcrumb(category, message, "error", data)

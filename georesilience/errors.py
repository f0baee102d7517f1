"""
Error taxonomy and factory for the geo SDK.

Every failure that crosses the resilience layer is represented by a
ResilienceError. Default severity, recovery policy and user message are
looked up per ErrorKind in the tables below; anything passed to the
constructor wins over the defaults.

normalize() turns arbitrary failures into ResilienceError. For opaque
exceptions and strings it falls back to a keyword heuristic on the message
text, which can misclassify (a storage error mentioning "network" becomes
NETWORK_ERROR). Collaborators that know what failed should raise a
ResilienceError with an explicit kind instead.
"""

import time
import traceback
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

from georesilience.config import Settings, settings as default_settings
from georesilience.models.error import (
    ErrorContext,
    ErrorKind,
    ErrorRecord,
    ErrorSeverity,
    RecoveryPolicy,
    UserMessage,
)


DEFAULT_RETRY_DELAY = 1.0

DEFAULT_SEVERITIES: Dict[ErrorKind, ErrorSeverity] = {
    # Critical
    ErrorKind.DATABASE_CORRUPTION: ErrorSeverity.CRITICAL,
    ErrorKind.ENCRYPTION_KEY_NOT_FOUND: ErrorSeverity.CRITICAL,
    ErrorKind.DATABASE_INIT_FAILED: ErrorSeverity.CRITICAL,

    # High
    ErrorKind.PERMISSION_DENIED: ErrorSeverity.HIGH,
    ErrorKind.PERMISSION_BACKGROUND_DENIED: ErrorSeverity.HIGH,
    ErrorKind.TRACKING_FAILED_TO_START: ErrorSeverity.HIGH,
    ErrorKind.LOCATION_UNAVAILABLE: ErrorSeverity.HIGH,
    ErrorKind.LOCATION_SERVICE_DISABLED: ErrorSeverity.HIGH,
    ErrorKind.SERVICE_NOT_AVAILABLE: ErrorSeverity.HIGH,

    # Medium
    ErrorKind.LOCATION_TIMEOUT: ErrorSeverity.MEDIUM,
    ErrorKind.SYNC_FAILED: ErrorSeverity.MEDIUM,
    ErrorKind.EXPORT_NO_DATA: ErrorSeverity.MEDIUM,
    ErrorKind.ACTIVITY_RECOGNITION_ERROR: ErrorSeverity.MEDIUM,
    ErrorKind.UPLOAD_FAILED: ErrorSeverity.MEDIUM,
    ErrorKind.OPERATION_TIMEOUT: ErrorSeverity.MEDIUM,

    # Low
    ErrorKind.TRACKING_ALREADY_ACTIVE: ErrorSeverity.LOW,
    ErrorKind.GEOFENCE_LIMIT_EXCEEDED: ErrorSeverity.LOW,
}

DEFAULT_SEVERITY = ErrorSeverity.MEDIUM

DEFAULT_RECOVERY_POLICIES: Dict[ErrorKind, RecoveryPolicy] = {
    ErrorKind.LOCATION_TIMEOUT: RecoveryPolicy(
        can_retry=True,
        max_retries=3,
        retry_delay=5.0,
        user_action="Please ensure you have a clear view of the sky for GPS signal.",
    ),
    ErrorKind.OPERATION_TIMEOUT: RecoveryPolicy(can_retry=True, max_retries=3, retry_delay=1.0),
    ErrorKind.DATABASE_QUERY_FAILED: RecoveryPolicy(can_retry=True, max_retries=2, retry_delay=1.0),
    ErrorKind.NETWORK_ERROR: RecoveryPolicy(
        can_retry=True,
        max_retries=3,
        retry_delay=2.0,
        user_action="Please check your internet connection.",
    ),
    ErrorKind.SYNC_FAILED: RecoveryPolicy(can_retry=True, max_retries=3, retry_delay=5.0),
    ErrorKind.UPLOAD_FAILED: RecoveryPolicy(
        can_retry=True,
        max_retries=3,
        retry_delay=5.0,
        user_action="Your data is saved locally and will be uploaded later.",
    ),
    ErrorKind.SERVICE_NOT_AVAILABLE: RecoveryPolicy(can_retry=True, max_retries=3, retry_delay=10.0),
    ErrorKind.BACKGROUND_SERVICE_ERROR: RecoveryPolicy(can_retry=True, max_retries=3, retry_delay=5.0),
    ErrorKind.PERMISSION_DENIED: RecoveryPolicy(
        can_retry=False,
        user_action="Please grant location permission in your device settings.",
    ),
    ErrorKind.PERMISSION_BACKGROUND_DENIED: RecoveryPolicy(
        can_retry=False,
        user_action="Please allow background location access in your device settings.",
    ),
    ErrorKind.PERMISSION_ACTIVITY_DENIED: RecoveryPolicy(
        can_retry=False,
        user_action="Please allow motion and fitness access in your device settings.",
    ),
    ErrorKind.DATABASE_CORRUPTION: RecoveryPolicy(
        can_retry=False,
        user_action="Database corruption detected. The app will reset your local data.",
    ),
    ErrorKind.ENCRYPTION_KEY_NOT_FOUND: RecoveryPolicy(
        can_retry=False,
        user_action="Your secure storage key is missing. Local data will be reset.",
    ),
}

DEFAULT_RECOVERY_POLICY = RecoveryPolicy(can_retry=False)

DEFAULT_USER_MESSAGES: Dict[ErrorKind, UserMessage] = {
    ErrorKind.PERMISSION_DENIED: UserMessage(
        title="Location Permission Required",
        message="This app needs location access to track your activities.",
        action="Please enable location permission in Settings.",
    ),
    ErrorKind.PERMISSION_BACKGROUND_DENIED: UserMessage(
        title="Background Location Required",
        message="Tracking stops when the app is in the background.",
        action="Please allow location access 'Always' in Settings.",
    ),
    ErrorKind.PERMISSION_ACTIVITY_DENIED: UserMessage(
        title="Motion Access Required",
        message="This app needs motion access to detect your activity.",
        action="Please enable motion and fitness access in Settings.",
    ),
    ErrorKind.LOCATION_TIMEOUT: UserMessage(
        title="Location Not Available",
        message="Unable to get your current location.",
        action="Please ensure GPS is enabled and you have a clear view of the sky.",
    ),
    ErrorKind.LOCATION_SERVICE_DISABLED: UserMessage(
        title="Location Services Disabled",
        message="Location services are turned off on your device.",
        action="Please enable location services in your device settings.",
    ),
    ErrorKind.ACTIVITY_RECOGNITION_ERROR: UserMessage(
        title="Activity Detection Issue",
        message="Unable to detect your current activity.",
        action="Activity tracking will resume automatically.",
    ),
    ErrorKind.NETWORK_ERROR: UserMessage(
        title="Connection Problem",
        message="Unable to reach the server.",
        action="Please check your internet connection.",
    ),
    ErrorKind.UPLOAD_FAILED: UserMessage(
        title="Upload Failed",
        message="Failed to upload your data to the server.",
        action="Your data is saved locally and will be uploaded when connection is restored.",
    ),
    ErrorKind.SERVICE_NOT_AVAILABLE: UserMessage(
        title="Service Unavailable",
        message="A required service is temporarily unavailable.",
        action="Please try again in a minute.",
    ),
    ErrorKind.TRACKING_ALREADY_ACTIVE: UserMessage(
        title="Already Tracking",
        message="Location tracking is already active.",
        action="No action needed.",
    ),
    ErrorKind.GEOFENCE_LIMIT_EXCEEDED: UserMessage(
        title="Too Many Zones",
        message="You can only monitor up to 10 zones at a time.",
        action="Please remove some zones before adding new ones.",
    ),
    ErrorKind.DATABASE_CORRUPTION: UserMessage(
        title="Data Error",
        message="There was a problem with your saved data.",
        action="The app will reset your local data to fix this issue.",
    ),
    ErrorKind.ENCRYPTION_KEY_NOT_FOUND: UserMessage(
        title="Secure Storage Error",
        message="Your encrypted data can no longer be read.",
        action="The app will reset your local data to fix this issue.",
    ),
    ErrorKind.EXPORT_NO_DATA: UserMessage(
        title="No Data to Export",
        message="There is no location data for the selected time period.",
        action="Please select a different date range.",
    ),
}

DEFAULT_USER_MESSAGE = UserMessage(
    title="Something Went Wrong",
    message="An unexpected error occurred.",
    action="Please try again or contact support if the problem persists.",
)

# Structured exception types, checked before the message heuristic
TYPE_RULES: Tuple[Tuple[Type[BaseException], ErrorKind], ...] = (
    (PermissionError, ErrorKind.PERMISSION_DENIED),
    (TimeoutError, ErrorKind.OPERATION_TIMEOUT),
    (ConnectionError, ErrorKind.NETWORK_ERROR),
)

# Best-effort, first match wins; every keyword of a rule must appear
KEYWORD_RULES: Tuple[Tuple[Tuple[str, ...], ErrorKind], ...] = (
    (("permission",), ErrorKind.PERMISSION_DENIED),
    (("location", "timeout"), ErrorKind.LOCATION_TIMEOUT),
    (("database",), ErrorKind.DATABASE_ERROR),
    (("network",), ErrorKind.NETWORK_ERROR),
)

ContextLike = Union[ErrorContext, Mapping[str, Any], None]


class ResilienceError(Exception):
    """
    Base error for all geo SDK failures.

    Instances are immutable once constructed: every attribute is fixed at
    the failure site and assignment raises AttributeError.

    Args:
        kind: Error kind
        message: Technical message
        severity: Overrides the kind's default severity
        context: Operation context (ErrorContext or mapping)
        original_error: Wrapped cause
        recovery: Overrides the kind's default recovery policy
        user_message: Overrides the kind's default user message
        config: Settings used to stamp platform and SDK version
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        severity: Optional[ErrorSeverity] = None,
        context: ContextLike = None,
        original_error: Optional[BaseException] = None,
        recovery: Optional[RecoveryPolicy] = None,
        user_message: Optional[UserMessage] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(message)
        config = config or default_settings
        base = coerce_context(context)
        cause = original_error or base.original_error

        object.__setattr__(self, "kind", ErrorKind(kind))
        object.__setattr__(self, "message", message)
        object.__setattr__(self, "severity", severity or DEFAULT_SEVERITIES.get(self.kind, DEFAULT_SEVERITY))
        object.__setattr__(self, "timestamp", time.time())
        object.__setattr__(self, "context", base.model_copy(update={
            "timestamp": self.timestamp,
            "platform": base.platform or config.host_platform,
            "sdk_version": base.sdk_version or config.sdk_version,
            "original_error": cause,
        }))
        object.__setattr__(self, "original_error", cause)
        object.__setattr__(
            self, "recovery",
            recovery or DEFAULT_RECOVERY_POLICIES.get(self.kind, DEFAULT_RECOVERY_POLICY)
        )
        object.__setattr__(
            self, "user_message",
            user_message or DEFAULT_USER_MESSAGES.get(self.kind, DEFAULT_USER_MESSAGE)
        )
        if cause is not None:
            self.__cause__ = cause
        object.__setattr__(self, "_frozen", True)

    def __setattr__(self, name: str, value: Any) -> None:
        # The interpreter still needs __traceback__, __notes__ and friends
        if getattr(self, "_frozen", False) and not name.startswith("__"):
            raise AttributeError(f"{type(self).__name__} is immutable")
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}, {self.message!r}, severity={self.severity.value})"

    def is_retryable(self) -> bool:
        """Whether the recovery policy allows retrying."""
        return self.recovery.can_retry

    def retry_delay(self) -> float:
        """Retry delay in seconds from the recovery policy."""
        if self.recovery.retry_delay is not None:
            return self.recovery.retry_delay
        return DEFAULT_RETRY_DELAY

    def is_critical(self) -> bool:
        return self.severity == ErrorSeverity.CRITICAL

    def to_record(self) -> ErrorRecord:
        """
        Snapshot this error as a serializable record.

        Returns:
            ErrorRecord with context flattened to plain values
        """
        context = self.context.model_dump(exclude={"original_error"})
        if self.original_error is not None:
            context["original_error"] = f"{type(self.original_error).__name__}: {self.original_error}"

        stack_trace = None
        if self.__traceback__ is not None:
            stack_trace = "".join(traceback.format_exception(type(self), self, self.__traceback__))

        return ErrorRecord(
            name=type(self).__name__,
            kind=self.kind,
            message=self.message,
            severity=self.severity,
            context=context,
            user_message=self.user_message,
            recovery=self.recovery,
            timestamp=self.timestamp,
            stack_trace=stack_trace,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation for logging and reporting."""
        return self.to_record().model_dump(mode="json")


def coerce_context(context: ContextLike) -> ErrorContext:
    if context is None:
        return ErrorContext()
    if isinstance(context, ErrorContext):
        return context
    return ErrorContext(**dict(context))


def create_error(
    kind: ErrorKind,
    message: str,
    context: ContextLike = None,
    original_error: Optional[BaseException] = None,
) -> ResilienceError:
    """
    Create an error with the kind's default policy tables applied.

    Args:
        kind: Error kind
        message: Technical message
        context: Operation context
        original_error: Wrapped cause

    Returns:
        New ResilienceError
    """
    return ResilienceError(kind, message, context=context, original_error=original_error)


def is_resilience_error(error: Any) -> bool:
    return isinstance(error, ResilienceError)


def classify_message(message: str) -> ErrorKind:
    """
    Guess an error kind from free-form message text.

    Args:
        message: Message to inspect (case-insensitive)

    Returns:
        First matching kind from KEYWORD_RULES, or UNKNOWN_ERROR
    """
    lowered = message.lower()
    for keywords, kind in KEYWORD_RULES:
        if all(keyword in lowered for keyword in keywords):
            return kind
    return ErrorKind.UNKNOWN_ERROR


def normalize(failure: Any, context: ContextLike = None) -> ResilienceError:
    """
    Convert any failure into a ResilienceError.

    Idempotent: a ResilienceError is returned unchanged and the context
    argument is ignored for it.

    Args:
        failure: Exception, string or any other failure value
        context: Context for newly created errors

    Returns:
        Normalized error, wrapping the original exception as its cause
    """
    if isinstance(failure, ResilienceError):
        return failure

    if isinstance(failure, BaseException):
        message = str(failure) or type(failure).__name__
        for exc_type, kind in TYPE_RULES:
            if isinstance(failure, exc_type):
                return create_error(kind, message, context, failure)
        return create_error(classify_message(message), message, context, failure)

    if isinstance(failure, str):
        return create_error(classify_message(failure), failure, context)

    return create_error(ErrorKind.UNKNOWN_ERROR, str(failure), context)

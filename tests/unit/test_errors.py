"""
Unit tests for the error taxonomy and factory.
"""

import pytest

from georesilience.config import Settings
from georesilience.errors import (
    DEFAULT_RECOVERY_POLICIES,
    DEFAULT_RECOVERY_POLICY,
    DEFAULT_SEVERITIES,
    DEFAULT_SEVERITY,
    DEFAULT_USER_MESSAGE,
    DEFAULT_USER_MESSAGES,
    ResilienceError,
    classify_message,
    create_error,
    is_resilience_error,
    normalize,
)
from georesilience.models.error import (
    ErrorContext,
    ErrorKind,
    ErrorSeverity,
    RecoveryPolicy,
    UserMessage,
)


@pytest.mark.parametrize("kind", list(ErrorKind))
def test_defaults_applied_for_every_kind(kind):
    """Test that a bare error gets its kind's default tables."""
    error = ResilienceError(kind, "boom")

    assert error.severity == DEFAULT_SEVERITIES.get(kind, DEFAULT_SEVERITY)
    assert error.recovery == DEFAULT_RECOVERY_POLICIES.get(kind, DEFAULT_RECOVERY_POLICY)
    assert error.user_message == DEFAULT_USER_MESSAGES.get(kind, DEFAULT_USER_MESSAGE)
    assert error.is_retryable() == error.recovery.can_retry


def test_overrides_win_over_defaults():
    """Test that constructor overrides replace the default tables."""
    recovery = RecoveryPolicy(can_retry=True, max_retries=7, retry_delay=0.5)
    user_message = UserMessage(title="Custom", message="Custom message")

    error = ResilienceError(
        ErrorKind.PERMISSION_DENIED,
        "denied",
        severity=ErrorSeverity.LOW,
        recovery=recovery,
        user_message=user_message,
    )

    assert error.severity == ErrorSeverity.LOW
    assert error.recovery == recovery
    assert error.user_message == user_message
    assert error.is_retryable() is True
    assert error.retry_delay() == 0.5


def test_retryable_and_critical_defaults():
    """Test the documented retryable and critical kinds."""
    assert ResilienceError(ErrorKind.LOCATION_TIMEOUT, "t").is_retryable()
    assert ResilienceError(ErrorKind.NETWORK_ERROR, "n").is_retryable()
    assert ResilienceError(ErrorKind.DATABASE_QUERY_FAILED, "q").is_retryable()

    permission = ResilienceError(ErrorKind.PERMISSION_DENIED, "p")
    assert not permission.is_retryable()
    assert permission.recovery.user_action is not None

    corruption = ResilienceError(ErrorKind.DATABASE_CORRUPTION, "c")
    assert corruption.is_critical()
    assert not corruption.is_retryable()

    missing_key = ResilienceError(ErrorKind.ENCRYPTION_KEY_NOT_FOUND, "k")
    assert missing_key.is_critical()
    assert not missing_key.is_retryable()


def test_retry_delay_falls_back_to_one_second():
    """Test retry delay fallback when the policy has none."""
    error = ResilienceError(ErrorKind.PERMISSION_DENIED, "denied")

    assert error.recovery.retry_delay is None
    assert error.retry_delay() == 1.0


def test_context_is_stamped():
    """Test that construction stamps timestamp, platform and SDK version."""
    config = Settings(host_platform="android", sdk_version="9.9.9")

    error = ResilienceError(
        ErrorKind.SYNC_FAILED,
        "sync failed",
        context={"operation": "sync", "metadata": {"batch": 3}},
        config=config,
    )

    assert error.context.operation == "sync"
    assert error.context.metadata == {"batch": 3}
    assert error.context.platform == "android"
    assert error.context.sdk_version == "9.9.9"
    assert error.context.timestamp == error.timestamp


def test_supplied_platform_is_kept():
    """Test that an explicit platform in the context is not overwritten."""
    error = ResilienceError(
        ErrorKind.BACKGROUND_SERVICE_ERROR,
        "stopped",
        context=ErrorContext(platform="ios"),
        config=Settings(host_platform="android"),
    )

    assert error.context.platform == "ios"


def test_error_is_immutable():
    """Test that attributes cannot be reassigned after construction."""
    error = ResilienceError(ErrorKind.NETWORK_ERROR, "offline")

    with pytest.raises(AttributeError):
        error.kind = ErrorKind.UNKNOWN_ERROR

    with pytest.raises(AttributeError):
        error.severity = ErrorSeverity.LOW


def test_original_error_becomes_cause():
    """Test that the wrapped exception is chained as __cause__."""
    original = ValueError("bad value")

    error = create_error(ErrorKind.INVALID_CONFIG, "invalid", {"operation": "configure"}, original)

    assert error.original_error is original
    assert error.__cause__ is original
    assert error.context.original_error is original


def test_create_error_and_type_guard():
    """Test factory helper and type guard."""
    error = create_error(ErrorKind.EXPORT_NO_DATA, "nothing to export")

    assert is_resilience_error(error)
    assert not is_resilience_error(ValueError("x"))
    assert error.severity == ErrorSeverity.MEDIUM


@pytest.mark.parametrize("message,expected", [
    ("Permission denied by user", ErrorKind.PERMISSION_DENIED),
    ("Location request TIMEOUT", ErrorKind.LOCATION_TIMEOUT),
    ("database is locked", ErrorKind.DATABASE_ERROR),
    ("Network unreachable", ErrorKind.NETWORK_ERROR),
    ("something odd", ErrorKind.UNKNOWN_ERROR),
    ("timeout while reading", ErrorKind.UNKNOWN_ERROR),
])
def test_classify_message(message, expected):
    """Test keyword heuristic classification."""
    assert classify_message(message) == expected


def test_normalize_exception_keeps_cause():
    """Test that normalizing an exception wraps it."""
    original = RuntimeError("network connection lost")

    error = normalize(original, {"operation": "upload"})

    assert error.kind == ErrorKind.NETWORK_ERROR
    assert error.message == "network connection lost"
    assert error.original_error is original
    assert error.context.operation == "upload"


def test_normalize_structured_exception_types():
    """Test that builtin exception types map before the keyword heuristic."""
    assert normalize(PermissionError("nope")).kind == ErrorKind.PERMISSION_DENIED
    assert normalize(TimeoutError()).kind == ErrorKind.OPERATION_TIMEOUT
    assert normalize(ConnectionResetError("reset")).kind == ErrorKind.NETWORK_ERROR


def test_normalize_string_and_other_values():
    """Test normalizing strings and arbitrary values."""
    assert normalize("database write failed").kind == ErrorKind.DATABASE_ERROR

    error = normalize(42)
    assert error.kind == ErrorKind.UNKNOWN_ERROR
    assert error.message == "42"


@pytest.mark.parametrize("failure", [
    RuntimeError("network down"),
    "permission revoked",
    ResilienceError(ErrorKind.SYNC_FAILED, "sync"),
    None,
])
def test_normalize_is_idempotent(failure):
    """Test normalize(normalize(x)) is normalize(x)."""
    once = normalize(failure)

    assert normalize(once) is once
    assert normalize(once, {"operation": "ignored"}) is once


def test_to_record_and_to_dict():
    """Test serializable snapshot of an error."""
    original = OSError("disk full")
    error = create_error(ErrorKind.DATABASE_QUERY_FAILED, "query failed", {"operation": "insert"}, original)

    record = error.to_record()
    assert record.name == "ResilienceError"
    assert record.kind == ErrorKind.DATABASE_QUERY_FAILED
    assert record.context["operation"] == "insert"
    assert record.context["original_error"] == "OSError: disk full"
    assert record.stack_trace is None

    data = error.to_dict()
    assert data["kind"] == "DATABASE_QUERY_FAILED"
    assert data["severity"] == "medium"
    assert data["recovery"]["can_retry"] is True


def test_to_record_includes_stack_trace_when_raised():
    """Test that a raised error carries its stack trace in the record."""
    try:
        raise ResilienceError(ErrorKind.EXPORT_ERROR, "export failed")
    except ResilienceError as e:
        record = e.to_record()

    assert record.stack_trace is not None
    assert "export failed" in record.stack_trace

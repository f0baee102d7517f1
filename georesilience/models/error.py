"""Error taxonomy data models."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ErrorKind(str, Enum):
    """Categorical identifier for a class of failure, grouped by domain."""

    # Permission
    PERMISSION_DENIED = "PERMISSION_DENIED"
    PERMISSION_BACKGROUND_DENIED = "PERMISSION_BACKGROUND_DENIED"
    PERMISSION_ACTIVITY_DENIED = "PERMISSION_ACTIVITY_DENIED"

    # Location
    LOCATION_ERROR = "LOCATION_ERROR"
    LOCATION_TIMEOUT = "LOCATION_TIMEOUT"
    LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
    LOCATION_SERVICE_DISABLED = "LOCATION_SERVICE_DISABLED"

    # Activity recognition
    ACTIVITY_RECOGNITION_ERROR = "ACTIVITY_RECOGNITION_ERROR"

    # Tracking
    TRACKING_ALREADY_ACTIVE = "TRACKING_ALREADY_ACTIVE"
    TRACKING_NOT_ACTIVE = "TRACKING_NOT_ACTIVE"
    TRACKING_FAILED_TO_START = "TRACKING_FAILED_TO_START"

    # Geofence
    GEOFENCE_LIMIT_EXCEEDED = "GEOFENCE_LIMIT_EXCEEDED"
    GEOFENCE_INVALID_POLYGON = "GEOFENCE_INVALID_POLYGON"
    GEOFENCE_MONITORING_FAILED = "GEOFENCE_MONITORING_FAILED"

    # Storage
    DATABASE_ERROR = "DATABASE_ERROR"
    DATABASE_INIT_FAILED = "DATABASE_INIT_FAILED"
    DATABASE_QUERY_FAILED = "DATABASE_QUERY_FAILED"
    DATABASE_CORRUPTION = "DATABASE_CORRUPTION"

    # Crypto
    ENCRYPTION_KEY_ERROR = "ENCRYPTION_KEY_ERROR"
    ENCRYPTION_KEY_NOT_FOUND = "ENCRYPTION_KEY_NOT_FOUND"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"

    # Export / audit
    EXPORT_ERROR = "EXPORT_ERROR"
    EXPORT_NO_DATA = "EXPORT_NO_DATA"
    SIGNING_ERROR = "SIGNING_ERROR"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"

    # Platform
    PLATFORM_NOT_SUPPORTED = "PLATFORM_NOT_SUPPORTED"
    SERVICE_NOT_AVAILABLE = "SERVICE_NOT_AVAILABLE"
    BACKGROUND_SERVICE_ERROR = "BACKGROUND_SERVICE_ERROR"
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"

    # Network
    NETWORK_ERROR = "NETWORK_ERROR"
    SYNC_FAILED = "SYNC_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"

    # Configuration
    INVALID_CONFIG = "INVALID_CONFIG"
    MISSING_REQUIRED_PARAM = "MISSING_REQUIRED_PARAM"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorSeverity(str, Enum):
    """Ordinal urgency of an error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


class ErrorContext(BaseModel):
    """Where and when an error happened."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    operation: Optional[str] = None
    component: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = {}
    timestamp: Optional[float] = None
    platform: Optional[str] = None
    sdk_version: Optional[str] = None
    original_error: Optional[BaseException] = None


class RecoveryPolicy(BaseModel):
    """How an error may be recovered from."""

    model_config = ConfigDict(frozen=True)

    can_retry: bool = False
    max_retries: Optional[int] = None
    retry_delay: Optional[float] = None
    user_action: Optional[str] = None


class UserMessage(BaseModel):
    """Ready-to-render message for presentation layers."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    action: Optional[str] = None


class ErrorRecord(BaseModel):
    """Serializable snapshot of a ResilienceError for logging and reporting."""

    name: str
    kind: ErrorKind
    message: str
    severity: ErrorSeverity
    context: Dict[str, Any]
    user_message: UserMessage
    recovery: RecoveryPolicy
    timestamp: float
    stack_trace: Optional[str] = None

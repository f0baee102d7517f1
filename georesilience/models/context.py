from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from georesilience.models.error import ErrorContext

BreadcrumbLevel = Literal["debug", "info", "warning", "error"]


class Breadcrumb(BaseModel):
    """One step of activity recorded ahead of a failure."""

    timestamp: float
    category: str
    message: str
    level: BreadcrumbLevel = "info"
    data: Optional[Any] = None


class SystemInfo(BaseModel):
    platform: str
    os_version: str
    python_version: str
    sdk_version: str
    app_version: Optional[str] = None
    device_model: Optional[str] = None
    is_emulator: Optional[bool] = None
    battery_level: Optional[float] = None
    is_charging: Optional[bool] = None


class LastKnownLocation(BaseModel):
    lat: float
    lon: float
    timestamp: float


class LocationContext(BaseModel):
    last_known_location: Optional[LastKnownLocation] = None
    location_permission: Optional[str] = None
    gps_enabled: Optional[bool] = None
    network_enabled: Optional[bool] = None
    mock_locations_enabled: Optional[bool] = None


class NetworkContext(BaseModel):
    is_connected: bool = False
    connection_type: Optional[str] = None
    effective_type: Optional[str] = None
    downlink: Optional[float] = None
    rtt: Optional[float] = None


class DatabaseContext(BaseModel):
    is_initialized: bool = False
    is_encrypted: bool = False
    record_count: Optional[int] = None
    last_operation: Optional[str] = None
    last_operation_time: Optional[float] = None


class FullErrorContext(ErrorContext):
    """Error context enriched with environment snapshots and breadcrumbs."""

    system: Optional[SystemInfo] = None
    location: Optional[LocationContext] = None
    network: Optional[NetworkContext] = None
    database: Optional[DatabaseContext] = None
    stack_trace: List[str] = Field(default_factory=list)
    breadcrumbs: List[Breadcrumb] = Field(default_factory=list)

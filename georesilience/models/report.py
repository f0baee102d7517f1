"""Dispatch report and statistics data models."""

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .error import ErrorContext


class ErrorReport(BaseModel):
    """One dispatched error plus its dispatch-time outcome."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: Any  # ResilienceError
    handled: bool = False
    recovered: bool = False
    retry_count: int = 0
    timestamp: float = Field(default_factory=time.time)
    dispatch_context: Optional[ErrorContext] = None


class ErrorStatistics(BaseModel):
    """Read-only view over the dispatcher history."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    total_errors: int
    errors_by_kind: Dict[str, int]
    errors_by_severity: Dict[str, int]
    recovery_rate: float
    critical_errors: int
    recent_errors: List[ErrorReport]

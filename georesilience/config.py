"""
Resilience layer configuration management.
"""

import sys
from typing import Optional

from pydantic_settings import BaseSettings

from georesilience import __version__


class Settings(BaseSettings):
    """Resilience settings loaded from environment variables."""

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    host_platform: str = sys.platform
    sdk_version: str = __version__

    # Error dispatcher
    error_history_size: int = 100
    breadcrumb_limit: int = 50

    # Default retry policy (seconds)
    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_factor: float = 2.0
    retry_timeout: float = 60.0
    retry_queue_interval: float = 1.0

    # Circuit breaker
    circuit_failure_threshold: int = 5
    circuit_reset_timeout: float = 60.0
    circuit_half_open_requests: int = 3

    # Built-in recovery strategies
    permission_wait_seconds: float = 30.0
    database_export_wait_seconds: float = 2.0
    connectivity_check_url: str = "https://www.google.com/generate_204"
    connectivity_check_timeout: float = 5.0

    # Reporter
    reporter_type: Optional[str] = None

    @property
    def is_development(self) -> bool:
        """Whether verbose development logging is enabled."""
        return self.environment.lower() != "production"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()

"""Configuration settings for metrics collection."""

from typing import Optional, List
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..registry import DEFAULT_BUCKETS

SUPPORTED_DRIVERS = ("memory", "in_memory", "inmemory", "redis", "null")

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class MetricsSettings(BaseSettings):
    """Settings for the metrics collector, storage driver and endpoint."""

    model_config = SettingsConfigDict(
        env_prefix="API_METRICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Collection
    enabled: bool = True
    excluded_paths: List[str] = []
    excluded_methods: List[str] = []
    histogram_buckets: List[float] = list(DEFAULT_BUCKETS)

    # Storage
    driver: str = "memory"
    redis_url: Optional[str] = None
    redis_prefix: str = "api_metrics:"
    redis_ttl: int = 86400  # 24 hours

    # Endpoint
    endpoint_path: str = "/metrics"

    # Logging
    logging_enabled: bool = True
    log_level: str = "debug"
    log_format: str = "json"

    @field_validator("driver")
    @classmethod
    def _check_driver(cls, value: str) -> str:
        value = value.lower()
        if value not in SUPPORTED_DRIVERS:
            raise ValueError(f"Unsupported driver type: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {value}")
        return value

    @field_validator("redis_ttl")
    @classmethod
    def _check_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("redis_ttl must be positive")
        return value


@lru_cache()
def get_settings() -> MetricsSettings:
    """Get cached metrics settings instance."""
    return MetricsSettings()

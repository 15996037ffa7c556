"""
Custom exceptions for the metrics library.
"""
from typing import Any, Dict, Optional


class ApiMetricsError(Exception):
    """Base exception for the metrics library."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class StorageDriverError(ApiMetricsError):
    """Storage driver error.

    Raised for registration conflicts, reserved label names, unknown driver
    names and backends that cannot be reached when the driver is built.
    """

    def __init__(
        self,
        message: str,
        metric_name: Optional[str] = None,
        driver: Optional[str] = None
    ):
        details = {}
        if metric_name is not None:
            details["metric"] = metric_name
        if driver is not None:
            details["driver"] = driver
        super().__init__(message, error_code="STORAGE_DRIVER_ERROR", details=details)
        self.metric_name = metric_name
        self.driver = driver


class ConfigurationError(ApiMetricsError):
    """Configuration error."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, error_code="CONFIG_ERROR")
        self.config_key = config_key

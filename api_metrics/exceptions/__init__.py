"""
Custom exceptions for the metrics library.
"""
from .errors import (
    ApiMetricsError,
    StorageDriverError,
    ConfigurationError,
)

__all__ = [
    'ApiMetricsError',
    'StorageDriverError',
    'ConfigurationError',
]

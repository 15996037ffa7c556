"""Configuration management for metrics collection."""

from .settings import get_settings, MetricsSettings, DEFAULT_BUCKETS

__all__ = [
    "get_settings",
    "MetricsSettings",
    "DEFAULT_BUCKETS",
]

"""
api-metrics: API request metrics with Prometheus text exposition.

Records counters, histograms, gauges, summaries and day-scoped unique counts
in a pluggable storage driver (in-memory or Redis) and renders them in the
Prometheus text exposition format.
"""

__version__ = "1.0.0"

from .config import get_settings, MetricsSettings
from .core import MetricsCollector, MetricsRegistry, initialize_metrics, timed
from .drivers import (
    StorageDriver,
    AbstractStorageDriver,
    InMemoryDriver,
    RedisDriver,
    NullDriver,
    StorageDriverDecorator,
    LoggingDecorator,
    create_storage_driver,
)
from .exceptions import ApiMetricsError, StorageDriverError, ConfigurationError
from .exporter import PrometheusExporter
from .exposition import CONTENT_TYPE, format_value
from .logging import setup_logging, get_logger
from .metrics import Counter, Gauge, Histogram, Summary
from .registry import DEFAULT_BUCKETS, MetricDescriptor, MetricType

__all__ = [
    # Configuration
    "get_settings",
    "MetricsSettings",

    # Collection
    "MetricsCollector",
    "MetricsRegistry",
    "initialize_metrics",
    "timed",

    # Storage
    "StorageDriver",
    "AbstractStorageDriver",
    "InMemoryDriver",
    "RedisDriver",
    "NullDriver",
    "StorageDriverDecorator",
    "LoggingDecorator",
    "create_storage_driver",

    # Metrics
    "Counter",
    "Gauge",
    "Histogram",
    "Summary",
    "MetricDescriptor",
    "MetricType",
    "DEFAULT_BUCKETS",

    # Exposition
    "PrometheusExporter",
    "CONTENT_TYPE",
    "format_value",

    # Exceptions
    "ApiMetricsError",
    "StorageDriverError",
    "ConfigurationError",

    # Logging
    "setup_logging",
    "get_logger",
]

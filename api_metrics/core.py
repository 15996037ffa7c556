"""
Metrics collection facade.

This module ties a storage driver, the handle registry and the collection
settings together. A single :class:`MetricsCollector` is created at
application start-up and passed to the middleware and exporter.
"""
import inspect
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .config import MetricsSettings, get_settings
from .drivers import InMemoryDriver, NullDriver, StorageDriver, create_storage_driver
from .exceptions import StorageDriverError
from .logging import get_logger
from .metrics import HANDLE_TYPES, Counter, Gauge, Histogram, Metric, Summary
from .registry import MetricType

REQUESTS_METRIC = "api_requests_total"
DURATION_METRIC = "api_request_duration_seconds"
UNIQUE_USERS_METRIC = "api_unique_users_total"
ERRORS_METRIC = "api_errors_total"
OPERATION_DURATION_METRIC = "operation_duration_seconds"

REQUEST_LABELS = ["endpoint", "method", "status", "user_id"]
ERROR_LABELS = ["endpoint", "method", "status", "error_type", "user_id"]

DISABLED_BODY = "# Metrics collection is disabled\n"


class MetricsRegistry:
    """Registry of metric handles for one storage driver."""

    def __init__(self, driver: StorageDriver, logger=None):
        self.driver = driver
        self.logger = logger or get_logger(__name__)
        self._metrics: Dict[str, Metric] = {}

    def _register(self, kind: MetricType, name: str, register, *args) -> Metric:
        existing = self._metrics.get(name)
        if existing is not None:
            if existing.kind is kind:
                return existing
            self.logger.warning(f"Metric {name} already registered as a different type", metric=name)
            raise StorageDriverError(
                f"Metric {name} already registered as a different type ({existing.kind.value})",
                metric_name=name,
            )

        descriptor = register(name, *args)
        handle = HANDLE_TYPES[kind](descriptor, self.driver)
        self._metrics[name] = handle
        # Normalized names (counters gain _total) resolve to the same handle.
        self._metrics.setdefault(descriptor.name, handle)
        return handle

    def register_counter(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._register(MetricType.COUNTER, name, self.driver.register_counter, help, label_names)

    def register_gauge(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._register(MetricType.GAUGE, name, self.driver.register_gauge, help, label_names)

    def register_histogram(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        buckets: Optional[Iterable[float]] = None
    ) -> Histogram:
        return self._register(MetricType.HISTOGRAM, name, self.driver.register_histogram, help, label_names, buckets)

    def register_summary(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> Summary:
        return self._register(MetricType.SUMMARY, name, self.driver.register_summary, help, label_names, quantiles)

    def get_metric(self, name: str) -> Optional[Metric]:
        return self._metrics.get(name)

    def get_metrics(self) -> Dict[str, Metric]:
        """Registered handles keyed by their normalized name."""
        return {handle.name: handle for handle in self._metrics.values()}

    def clear(self) -> None:
        self._metrics.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._metrics


class MetricsCollector:
    """
    Entry point for recording API metrics.

    Args:
        driver: driver name or a ready driver instance; defaults to
            ``settings.driver``
        settings: collection settings; defaults to :func:`get_settings`
        logger: structlog logger shared with the driver

    When the configured driver cannot be built the collector logs the
    failure and falls back to an in-memory driver. While disabled, every
    recording call is a no-op and registration returns handles bound to a
    :class:`NullDriver`.
    """

    def __init__(
        self,
        driver: Union[str, StorageDriver, None] = None,
        settings: Optional[MetricsSettings] = None,
        logger=None
    ):
        self.settings = settings or get_settings()
        self.logger = logger or get_logger(__name__)
        self.enabled = self.settings.enabled
        self.excluded_paths: List[str] = list(self.settings.excluded_paths)
        self.excluded_methods: List[str] = [m.upper() for m in self.settings.excluded_methods]

        if isinstance(driver, StorageDriver):
            self.driver = driver
        else:
            driver_name = driver or self.settings.driver
            try:
                self.driver = create_storage_driver(driver_name, self.settings, self.logger)
            except Exception as e:
                self.logger.error(
                    "Failed to initialize metrics driver, falling back to in-memory storage",
                    driver=driver_name,
                    error=str(e),
                )
                self.driver = InMemoryDriver(self.logger)

        self.registry = MetricsRegistry(self.driver, self.logger)
        self._disabled_registry = MetricsRegistry(NullDriver(self.logger), self.logger)
        self._register_default_metrics()

        self.logger.info(
            "MetricsCollector initialized",
            driver=type(self.driver).__name__,
            enabled=self.enabled,
        )

    def _register_default_metrics(self) -> None:
        self.registry.register_counter(REQUESTS_METRIC, "Total number of API requests", REQUEST_LABELS)
        self.registry.register_histogram(
            DURATION_METRIC,
            "API request duration in seconds",
            REQUEST_LABELS,
            self.settings.histogram_buckets,
        )
        self.registry.register_counter(
            UNIQUE_USERS_METRIC,
            "Number of unique users per day accessing the API",
            ["endpoint", "date"],
        )
        self.registry.register_counter(ERRORS_METRIC, "Total number of API errors", ERROR_LABELS)

    @property
    def _active_registry(self) -> MetricsRegistry:
        return self.registry if self.enabled else self._disabled_registry

    # Registration

    def register_counter(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._active_registry.register_counter(name, help, label_names)

    def register_gauge(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._active_registry.register_gauge(name, help, label_names)

    def register_histogram(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        buckets: Optional[Iterable[float]] = None
    ) -> Histogram:
        return self._active_registry.register_histogram(name, help, label_names, buckets)

    def register_summary(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> Summary:
        return self._active_registry.register_summary(name, help, label_names, quantiles)

    # Recording

    def increment_counter(self, name: str, labels: Optional[Mapping[str, Any]] = None, value: int = 1) -> None:
        if not self.enabled:
            return
        try:
            metric = self.registry.get_metric(name)
            if isinstance(metric, Counter):
                metric.increment(labels, value)
            else:
                self.driver.increment_counter(name, labels, value)
        except Exception as e:
            self.logger.error(f"Failed to increment counter {name}", error=str(e), labels=labels, value=value)

    def observe_histogram(self, name: str, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        try:
            metric = self.registry.get_metric(name)
            if isinstance(metric, Histogram):
                metric.observe(value, labels)
            else:
                self.driver.observe_histogram(name, value, labels)
        except Exception as e:
            self.logger.error(f"Failed to observe histogram {name}", error=str(e), labels=labels, value=value)

    def set_gauge(self, name: str, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        try:
            self.driver.set_gauge(name, value, labels)
        except Exception as e:
            self.logger.error(f"Failed to set gauge {name}", error=str(e), labels=labels, value=value)

    def increment_gauge(self, name: str, value: float = 1.0, labels: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        try:
            self.driver.increment_gauge(name, value, labels)
        except Exception as e:
            self.logger.error(f"Failed to increment gauge {name}", error=str(e), labels=labels, value=value)

    def decrement_gauge(self, name: str, value: float = 1.0, labels: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        try:
            self.driver.decrement_gauge(name, value, labels)
        except Exception as e:
            self.logger.error(f"Failed to decrement gauge {name}", error=str(e), labels=labels, value=value)

    def observe_summary(self, name: str, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        try:
            metric = self.registry.get_metric(name)
            if isinstance(metric, Summary):
                metric.observe(value, labels)
            else:
                self.driver.observe_summary(name, value, labels)
        except Exception as e:
            self.logger.error(f"Failed to observe summary {name}", error=str(e), labels=labels, value=value)

    def track_unique(self, name: str, identifier: str, labels: Optional[Mapping[str, Any]] = None) -> None:
        if not self.enabled:
            return
        try:
            self.driver.track_unique(name, identifier, labels)
        except Exception as e:
            self.logger.error(
                f"Failed to track unique occurrence for {name}",
                error=str(e),
                identifier=identifier,
                labels=labels,
            )

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration: float,
        user_id: Optional[str] = None,
        error_type: Optional[str] = None
    ) -> None:
        """Record the default request metrics for one handled request."""
        labels = {
            "endpoint": endpoint,
            "method": method.upper(),
            "status": str(status_code),
            "user_id": user_id or "guest",
        }
        self.increment_counter(REQUESTS_METRIC, labels)
        self.observe_histogram(DURATION_METRIC, duration, labels)

        if error_type is not None or status_code >= 400:
            self.increment_counter(ERRORS_METRIC, {
                "endpoint": endpoint,
                "method": labels["method"],
                "status": labels["status"],
                "error_type": error_type or ("server_error" if status_code >= 500 else "client_error"),
                "user_id": labels["user_id"],
            })

        if user_id:
            self.track_unique("users", user_id, {"endpoint": endpoint})

    @contextmanager
    def time_operation(self, operation: str, metric_name: str = OPERATION_DURATION_METRIC):
        """Context manager to time an operation into a histogram."""
        self.register_histogram(metric_name, "Duration of timed operations in seconds", ["operation", "status"])
        start_time = time.time()
        status = "success"
        try:
            yield
        except Exception:
            status = "failure"
            raise
        finally:
            duration = time.time() - start_time
            self.observe_histogram(metric_name, duration, {"operation": operation, "status": status})

    # Exposition and lifecycle

    def get_metrics(self) -> str:
        if not self.enabled:
            return DISABLED_BODY
        try:
            return self.driver.get_metrics()
        except Exception as e:
            self.logger.error("Failed to get metrics", error=str(e))
            return f"# Error getting metrics: {e}\n"

    def should_exclude_path(self, path: str, method: str) -> bool:
        """
        Whether a request should be left out of collection.

        Paths are compared without their leading slash. An excluded path
        ending in ``*`` matches every path starting with the part before it.
        """
        if method.upper() in self.excluded_methods:
            return True

        path = path.lstrip('/')
        for excluded in self.excluded_paths:
            excluded = excluded.lstrip('/')
            if excluded == path:
                return True
            if excluded.endswith('*') and path.startswith(excluded[:-1]):
                return True
        return False

    def is_enabled(self) -> bool:
        return self.enabled

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def flush_metrics(self) -> bool:
        """Drop all stored metrics, then register the default metrics again."""
        try:
            flushed = self.driver.flush_metrics()
        except Exception as e:
            self.logger.error("Failed to flush metrics", error=str(e))
            return False
        if flushed:
            self.registry.clear()
            self._register_default_metrics()
        return flushed


def timed(
    operation: Optional[str] = None,
    collector: Optional[MetricsCollector] = None,
    metric_name: str = OPERATION_DURATION_METRIC
):
    """
    Decorator to time function execution into a histogram.

    The collector is ``collector`` when given, otherwise the
    ``_metrics_collector`` attribute of the first positional argument.
    Without either, the function runs untimed.
    """
    def decorator(func):
        operation_name = operation or f"{func.__module__}.{func.__name__}"

        def _resolve(args) -> Optional[MetricsCollector]:
            if collector is not None:
                return collector
            if args and hasattr(args[0], '_metrics_collector'):
                return args[0]._metrics_collector
            return None

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            active = _resolve(args)
            if active is None:
                return await func(*args, **kwargs)
            with active.time_operation(operation_name, metric_name):
                return await func(*args, **kwargs)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            active = _resolve(args)
            if active is None:
                return func(*args, **kwargs)
            with active.time_operation(operation_name, metric_name):
                return func(*args, **kwargs)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def initialize_metrics(settings: Optional[MetricsSettings] = None, driver: Optional[str] = None) -> MetricsCollector:
    """Initialize metrics collection for a service."""
    return MetricsCollector(driver=driver, settings=settings)

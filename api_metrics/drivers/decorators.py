"""Driver decorators: wrap any storage driver and forward the full contract."""
from typing import Iterable, Mapping, Optional

from ..logging import get_logger
from ..registry import MetricDescriptor
from .base import Labels, StorageDriver


class StorageDriverDecorator(StorageDriver):
    """Forwards every contract operation to the wrapped driver."""

    def __init__(self, inner: StorageDriver):
        self.inner = inner

    def __getattr__(self, name):
        """Delegate driver-specific attributes to the wrapped driver."""
        if name == "inner":
            raise AttributeError(name)
        return getattr(self.inner, name)

    def register_counter(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> MetricDescriptor:
        return self.inner.register_counter(name, help, label_names)

    def register_histogram(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        buckets: Optional[Iterable[float]] = None
    ) -> MetricDescriptor:
        return self.inner.register_histogram(name, help, label_names, buckets)

    def register_gauge(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> MetricDescriptor:
        return self.inner.register_gauge(name, help, label_names)

    def register_summary(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> MetricDescriptor:
        return self.inner.register_summary(name, help, label_names, quantiles)

    def get_descriptor(self, name: str) -> Optional[MetricDescriptor]:
        return self.inner.get_descriptor(name)

    def increment_counter(self, name: str, labels: Labels = None, value: int = 1) -> None:
        self.inner.increment_counter(name, labels, value)

    def get_counter_value(self, name: str, labels: Labels = None) -> int:
        return self.inner.get_counter_value(name, labels)

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        buckets: Optional[Iterable[float]] = None
    ) -> None:
        self.inner.observe_histogram(name, value, labels, buckets)

    def get_histogram_sum(self, name: str, labels: Labels = None) -> float:
        return self.inner.get_histogram_sum(name, labels)

    def get_histogram_count(self, name: str, labels: Labels = None) -> int:
        return self.inner.get_histogram_count(name, labels)

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        self.inner.set_gauge(name, value, labels)

    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        self.inner.increment_gauge(name, value, labels)

    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        self.inner.decrement_gauge(name, value, labels)

    def get_gauge_value(self, name: str, labels: Labels = None) -> float:
        return self.inner.get_gauge_value(name, labels)

    def observe_summary(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> None:
        self.inner.observe_summary(name, value, labels, quantiles)

    def get_summary_sum(self, name: str, labels: Labels = None) -> float:
        return self.inner.get_summary_sum(name, labels)

    def get_summary_count(self, name: str, labels: Labels = None) -> int:
        return self.inner.get_summary_count(name, labels)

    def track_unique(self, name: str, identifier: str, labels: Labels = None) -> None:
        self.inner.track_unique(name, identifier, labels)

    def get_metrics(self) -> str:
        return self.inner.get_metrics()

    def flush_metrics(self) -> bool:
        return self.inner.flush_metrics()

    def unwrap(self) -> StorageDriver:
        """The innermost driver beneath any stack of decorators."""
        driver = self.inner
        while isinstance(driver, StorageDriverDecorator):
            driver = driver.inner
        return driver


class LoggingDecorator(StorageDriverDecorator):
    """Logs every write operation before forwarding it."""

    def __init__(self, inner: StorageDriver, logger=None, log_level: str = "debug"):
        super().__init__(inner)
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level.lower()

    def _log(self, message: str, **context) -> None:
        getattr(self.logger, self.log_level)(message, **context)

    def increment_counter(self, name: str, labels: Labels = None, value: int = 1) -> None:
        self._log(f"Incrementing counter {name} by {value}", labels=dict(labels or {}))
        super().increment_counter(name, labels, value)

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        buckets: Optional[Iterable[float]] = None
    ) -> None:
        self._log(f"Observing histogram {name} with value {value}", labels=dict(labels or {}))
        super().observe_histogram(name, value, labels, buckets)

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        self._log(f"Setting gauge {name} to {value}", labels=dict(labels or {}))
        super().set_gauge(name, value, labels)

    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        self._log(f"Incrementing gauge {name} by {value}", labels=dict(labels or {}))
        super().increment_gauge(name, value, labels)

    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        self._log(f"Decrementing gauge {name} by {value}", labels=dict(labels or {}))
        super().decrement_gauge(name, value, labels)

    def observe_summary(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> None:
        self._log(f"Observing summary {name} with value {value}", labels=dict(labels or {}))
        super().observe_summary(name, value, labels, quantiles)

    def track_unique(self, name: str, identifier: str, labels: Labels = None) -> None:
        self._log(f"Tracking unique occurrence for {name}", identifier=identifier, labels=dict(labels or {}))
        super().track_unique(name, identifier, labels)

    def flush_metrics(self) -> bool:
        self._log("Flushing metrics")
        return super().flush_metrics()

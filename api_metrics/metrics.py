"""
Metric handles bound to a storage driver.

A handle pairs a registered :class:`MetricDescriptor` with the driver that
stores its data, so callers can record values without repeating the name.
"""
from typing import Any, Dict, Mapping, Optional, Tuple

from .registry import MetricDescriptor, MetricType

Labels = Optional[Mapping[str, Any]]


class Metric:
    """Base class for metric handles."""

    kind: MetricType

    def __init__(self, descriptor: MetricDescriptor, driver):
        self.descriptor = descriptor
        self.driver = driver

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def help(self) -> str:
        return self.descriptor.help

    @property
    def label_names(self) -> Tuple[str, ...]:
        return self.descriptor.label_names

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class Counter(Metric):
    kind = MetricType.COUNTER

    def increment(self, labels: Labels = None, value: int = 1) -> None:
        self.driver.increment_counter(self.name, labels, value)

    def get_value(self, labels: Labels = None) -> int:
        return self.driver.get_counter_value(self.name, labels)


class Gauge(Metric):
    kind = MetricType.GAUGE

    def set(self, value: float, labels: Labels = None) -> None:
        self.driver.set_gauge(self.name, value, labels)

    def increment(self, value: float = 1.0, labels: Labels = None) -> None:
        self.driver.increment_gauge(self.name, value, labels)

    def decrement(self, value: float = 1.0, labels: Labels = None) -> None:
        self.driver.decrement_gauge(self.name, value, labels)

    def get_value(self, labels: Labels = None) -> float:
        return self.driver.get_gauge_value(self.name, labels)


class Histogram(Metric):
    """Histogram handle; observations use the registered bucket bounds."""

    kind = MetricType.HISTOGRAM

    @property
    def buckets(self) -> Tuple[float, ...]:
        return self.descriptor.buckets

    def observe(self, value: float, labels: Labels = None) -> None:
        self.driver.observe_histogram(self.name, value, labels, self.buckets)

    def get_sum(self, labels: Labels = None) -> float:
        return self.driver.get_histogram_sum(self.name, labels)

    def get_count(self, labels: Labels = None) -> int:
        return self.driver.get_histogram_count(self.name, labels)


class Summary(Metric):
    kind = MetricType.SUMMARY

    @property
    def quantiles(self) -> Dict[float, float]:
        return dict(self.descriptor.quantiles)

    def observe(self, value: float, labels: Labels = None) -> None:
        self.driver.observe_summary(self.name, value, labels, self.descriptor.quantiles)

    def get_sum(self, labels: Labels = None) -> float:
        return self.driver.get_summary_sum(self.name, labels)

    def get_count(self, labels: Labels = None) -> int:
        return self.driver.get_summary_count(self.name, labels)


HANDLE_TYPES = {
    MetricType.COUNTER: Counter,
    MetricType.GAUGE: Gauge,
    MetricType.HISTOGRAM: Histogram,
    MetricType.SUMMARY: Summary,
}

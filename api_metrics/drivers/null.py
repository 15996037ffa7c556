"""No-op storage driver used when collection is disabled."""
from typing import Iterable, Mapping, Optional

from ..exposition import MetricsSnapshot
from .base import AbstractStorageDriver, Labels


class NullDriver(AbstractStorageDriver):
    """
    Accepts every operation and stores nothing.

    Registration still validates names and records descriptors, so handles
    created while collection is disabled behave like real ones.
    """

    def increment_counter(self, name: str, labels: Labels = None, value: int = 1) -> None:
        pass

    def get_counter_value(self, name: str, labels: Labels = None) -> int:
        return 0

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        buckets: Optional[Iterable[float]] = None
    ) -> None:
        pass

    def get_histogram_sum(self, name: str, labels: Labels = None) -> float:
        return 0.0

    def get_histogram_count(self, name: str, labels: Labels = None) -> int:
        return 0

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        pass

    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        pass

    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        pass

    def get_gauge_value(self, name: str, labels: Labels = None) -> float:
        return 0.0

    def observe_summary(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> None:
        pass

    def get_summary_sum(self, name: str, labels: Labels = None) -> float:
        return 0.0

    def get_summary_count(self, name: str, labels: Labels = None) -> int:
        return 0

    def track_unique(self, name: str, identifier: str, labels: Labels = None) -> None:
        pass

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(descriptors=self.registry.all())

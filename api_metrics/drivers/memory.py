"""In-process storage driver backed by plain dictionaries."""
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Deque, Dict, Iterable, Mapping, Optional, Set, Tuple

from ..exposition import HistogramSample, MetricsSnapshot, SummarySample
from .base import AbstractStorageDriver, Labels, guarded

SeriesKey = Tuple[str, str]

SUMMARY_RETENTION = 1000


@dataclass
class HistogramAccumulator:
    """Running count, sum and cumulative bucket counts for one label set."""

    bounds: Tuple[float, ...]
    count: int = 0
    sum: float = 0.0
    buckets: Dict[float, int] = field(init=False)

    def __post_init__(self):
        self.buckets = {bound: 0 for bound in self.bounds}

    def observe(self, value: float) -> None:
        self.count += 1
        self.sum += value
        for bound in self.bounds:
            if value <= bound:
                self.buckets[bound] += 1

    def sample(self) -> HistogramSample:
        return HistogramSample(count=self.count, sum=self.sum, buckets=dict(self.buckets))


@dataclass
class SummaryAccumulator:
    quantiles: Dict[float, float]
    count: int = 0
    sum: float = 0.0
    values: Deque[float] = field(default_factory=lambda: deque(maxlen=SUMMARY_RETENTION))

    def observe(self, value: float) -> None:
        self.count += 1
        self.sum += value
        self.values.append(value)

    def sample(self) -> SummarySample:
        return SummarySample(count=self.count, sum=self.sum)


@dataclass
class UniqueAccumulator:
    identifiers: Set[str] = field(default_factory=set)
    count: int = 0

    def add(self, identifier: str) -> None:
        if identifier not in self.identifiers:
            self.identifiers.add(identifier)
            self.count += 1


def _group(series: Mapping[SeriesKey, object], convert=lambda value: value) -> Dict[str, Dict[str, object]]:
    grouped: Dict[str, Dict[str, object]] = {}
    for (name, fragment), value in series.items():
        grouped.setdefault(name, {})[fragment] = convert(value)
    return grouped


class InMemoryDriver(AbstractStorageDriver):
    """
    Stores every metric in process memory.

    All mutations and snapshots take one engine-wide re-entrant lock, so
    concurrent increments are never lost and a rendered body never mixes
    old and new values for one metric. Rendering itself happens outside
    the lock.
    """

    def __init__(self, logger=None, clock: Callable[[], date] = date.today):
        super().__init__(logger)
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: Dict[SeriesKey, int] = {}
        self._histograms: Dict[SeriesKey, HistogramAccumulator] = {}
        self._gauges: Dict[SeriesKey, float] = {}
        self._summaries: Dict[SeriesKey, SummaryAccumulator] = {}
        self._uniques: Dict[SeriesKey, UniqueAccumulator] = {}

    # Counters

    @guarded("Failed to increment counter")
    def increment_counter(self, name: str, labels: Labels = None, value: int = 1) -> None:
        if value < 1 or value != int(value):
            raise ValueError(f"Counter increment must be a whole number of at least 1, got {value}")
        key = (self.counter_name(name), self.generate_label_key(labels))
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(value)

    @guarded("Failed to get counter value", default=0)
    def get_counter_value(self, name: str, labels: Labels = None) -> int:
        key = (self.counter_name(name), self.generate_label_key(labels))
        with self._lock:
            return self._counters.get(key, 0)

    # Histograms

    @guarded("Failed to observe histogram")
    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        buckets: Optional[Iterable[float]] = None
    ) -> None:
        name = self.validate_metric_name(name)
        key = (name, self.series_label_key(labels, "le"))
        value = float(value)
        with self._lock:
            accumulator = self._histograms.get(key)
            if accumulator is None:
                accumulator = HistogramAccumulator(self.bucket_bounds(name, buckets))
                self._histograms[key] = accumulator
            accumulator.observe(value)

    def _histogram(self, name: str, labels: Labels) -> Optional[HistogramAccumulator]:
        key = (self.validate_metric_name(name), self.series_label_key(labels, "le"))
        return self._histograms.get(key)

    @guarded("Failed to get histogram sum", default=0.0)
    def get_histogram_sum(self, name: str, labels: Labels = None) -> float:
        with self._lock:
            accumulator = self._histogram(name, labels)
            return accumulator.sum if accumulator else 0.0

    @guarded("Failed to get histogram count", default=0)
    def get_histogram_count(self, name: str, labels: Labels = None) -> int:
        with self._lock:
            accumulator = self._histogram(name, labels)
            return accumulator.count if accumulator else 0

    # Gauges

    def _gauge_key(self, name: str, labels: Labels) -> SeriesKey:
        return (self.validate_metric_name(name), self.generate_label_key(labels))

    @guarded("Failed to set gauge")
    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        key = self._gauge_key(name, labels)
        with self._lock:
            self._gauges[key] = float(value)

    @guarded("Failed to increment gauge")
    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        key = self._gauge_key(name, labels)
        with self._lock:
            self._gauges[key] = self._gauges.get(key, 0.0) + float(value)

    @guarded("Failed to decrement gauge")
    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        key = self._gauge_key(name, labels)
        with self._lock:
            self._gauges[key] = self._gauges.get(key, 0.0) - float(value)

    @guarded("Failed to get gauge value", default=0.0)
    def get_gauge_value(self, name: str, labels: Labels = None) -> float:
        key = self._gauge_key(name, labels)
        with self._lock:
            return self._gauges.get(key, 0.0)

    # Summaries

    @guarded("Failed to observe summary")
    def observe_summary(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> None:
        name = self.validate_metric_name(name)
        key = (name, self.series_label_key(labels, "quantile"))
        value = float(value)
        with self._lock:
            accumulator = self._summaries.get(key)
            if accumulator is None:
                accumulator = SummaryAccumulator(self.summary_quantiles(name, quantiles))
                self._summaries[key] = accumulator
            accumulator.observe(value)

    def _summary(self, name: str, labels: Labels) -> Optional[SummaryAccumulator]:
        key = (self.validate_metric_name(name), self.series_label_key(labels, "quantile"))
        return self._summaries.get(key)

    @guarded("Failed to get summary sum", default=0.0)
    def get_summary_sum(self, name: str, labels: Labels = None) -> float:
        with self._lock:
            accumulator = self._summary(name, labels)
            return accumulator.sum if accumulator else 0.0

    @guarded("Failed to get summary count", default=0)
    def get_summary_count(self, name: str, labels: Labels = None) -> int:
        with self._lock:
            accumulator = self._summary(name, labels)
            return accumulator.count if accumulator else 0

    # Unique tracking

    @guarded("Failed to track unique value")
    def track_unique(self, name: str, identifier: str, labels: Labels = None) -> None:
        metric = self.unique_name(name)
        dated = dict(labels or {})
        dated['date'] = self._clock().isoformat()
        key = (metric, self.generate_label_key(dated))
        with self._lock:
            self._uniques.setdefault(key, UniqueAccumulator()).add(str(identifier))

    @guarded("Failed to get unique count", default=0)
    def get_unique_count(self, name: str, labels: Labels = None) -> int:
        """Distinct identifiers tracked today for ``name`` and ``labels``."""
        dated = dict(labels or {})
        dated['date'] = self._clock().isoformat()
        key = (self.unique_name(name), self.generate_label_key(dated))
        with self._lock:
            accumulator = self._uniques.get(key)
            return accumulator.count if accumulator else 0

    # Exposition

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                descriptors=self.registry.all(),
                counters=_group(self._counters),
                histograms=_group(self._histograms, HistogramAccumulator.sample),
                gauges=_group(self._gauges),
                summaries=_group(self._summaries, SummaryAccumulator.sample),
                uniques=_group(self._uniques, lambda accumulator: accumulator.count),
            )

    def flush_metrics(self) -> bool:
        try:
            with self._lock:
                self._counters.clear()
                self._histograms.clear()
                self._gauges.clear()
                self._summaries.clear()
                self._uniques.clear()
                super().flush_metrics()
            self.logger.info("In-memory metrics flushed")
            return True
        except Exception as e:
            self.logger.error("Failed to flush metrics", error=str(e))
            return False

"""
Redis-backed storage driver.

Data lives under ``<prefix><kind>:<name><labels>[:<suffix>]`` keys. Every
metric name also keeps an index set of the label fragments written for it,
so rendering reads exactly the series that exist without scanning the
keyspace.
"""
from datetime import date
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import redis

from ..exceptions import StorageDriverError
from ..exposition import HistogramSample, MetricsSnapshot, SummarySample, format_value
from ..naming import storage_key
from ..registry import MetricType
from .base import AbstractStorageDriver, Labels, guarded

DEFAULT_PREFIX = "api_metrics:"
DEFAULT_TTL = 86400
SUMMARY_RETENTION = 1000


def _text(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisDriver(AbstractStorageDriver):
    """Stores metrics in Redis so several processes can share them."""

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = DEFAULT_PREFIX,
        ttl: int = DEFAULT_TTL,
        logger=None,
        clock: Callable[[], date] = date.today
    ):
        super().__init__(logger)
        if prefix and not prefix.endswith(':'):
            prefix += ':'
        self.redis = client
        self.prefix = prefix
        self.ttl = ttl
        self._clock = clock

    @classmethod
    def from_url(
        cls,
        url: str,
        prefix: str = DEFAULT_PREFIX,
        ttl: int = DEFAULT_TTL,
        logger=None
    ) -> "RedisDriver":
        """
        Connect to Redis and verify the connection.

        Raises:
            StorageDriverError: if the server cannot be reached
        """
        try:
            client = redis.Redis.from_url(url, decode_responses=True)
            client.ping()
        except redis.RedisError as e:
            raise StorageDriverError(f"Failed to connect to Redis: {e}", driver="redis") from e
        return cls(client, prefix=prefix, ttl=ttl, logger=logger)

    # Keys

    def _key(self, kind: str, name: str, fragment: str = '', suffix: Optional[str] = None) -> str:
        return self.prefix + storage_key(kind, name, fragment, suffix)

    def _index(self, kind: str, name: Optional[str] = None) -> str:
        return f"{self.prefix}index:{kind}" + (f":{name}" if name else "")

    def _fragments(self, kind: str, name: str) -> List[str]:
        return sorted(_text(member) for member in self.redis.smembers(self._index(kind, name)))

    # Counters

    @guarded("Failed to increment counter")
    def increment_counter(self, name: str, labels: Labels = None, value: int = 1) -> None:
        if value < 1 or value != int(value):
            raise ValueError(f"Counter increment must be a whole number of at least 1, got {value}")
        name = self.counter_name(name)
        fragment = self.generate_label_key(labels)
        pipe = self.redis.pipeline()
        pipe.incrby(self._key("counter", name, fragment), int(value))
        pipe.sadd(self._index("counter", name), fragment)
        pipe.execute()

    @guarded("Failed to get counter value", default=0)
    def get_counter_value(self, name: str, labels: Labels = None) -> int:
        value = self.redis.get(self._key("counter", self.counter_name(name), self.generate_label_key(labels)))
        return int(value) if value is not None else 0

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
        fragment = self.series_label_key(labels, "le")
        value = float(value)
        pipe = self.redis.pipeline()
        pipe.incr(self._key("histogram", name, fragment, "count"))
        pipe.incrbyfloat(self._key("histogram", name, fragment, "sum"), value)
        for bound in self.bucket_bounds(name, buckets):
            if value <= bound:
                pipe.incr(self._key("histogram", name, fragment, f"bucket:{format_value(bound)}"))
        pipe.sadd(self._index("histogram", name), fragment)
        pipe.execute()

    @guarded("Failed to get histogram sum", default=0.0)
    def get_histogram_sum(self, name: str, labels: Labels = None) -> float:
        key = self._key("histogram", self.validate_metric_name(name), self.series_label_key(labels, "le"), "sum")
        value = self.redis.get(key)
        return float(value) if value is not None else 0.0

    @guarded("Failed to get histogram count", default=0)
    def get_histogram_count(self, name: str, labels: Labels = None) -> int:
        key = self._key("histogram", self.validate_metric_name(name), self.series_label_key(labels, "le"), "count")
        value = self.redis.get(key)
        return int(value) if value is not None else 0

    # Gauges

    @guarded("Failed to set gauge")
    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        self._write_gauge(name, labels, lambda pipe, key: pipe.set(key, repr(float(value))))

    @guarded("Failed to increment gauge")
    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        self._write_gauge(name, labels, lambda pipe, key: pipe.incrbyfloat(key, float(value)))

    @guarded("Failed to decrement gauge")
    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        self._write_gauge(name, labels, lambda pipe, key: pipe.incrbyfloat(key, -float(value)))

    def _write_gauge(self, name: str, labels: Labels, write) -> None:
        name = self.validate_metric_name(name)
        fragment = self.generate_label_key(labels)
        pipe = self.redis.pipeline()
        write(pipe, self._key("gauge", name, fragment))
        pipe.sadd(self._index("gauge", name), fragment)
        pipe.execute()

    @guarded("Failed to get gauge value", default=0.0)
    def get_gauge_value(self, name: str, labels: Labels = None) -> float:
        value = self.redis.get(self._key("gauge", self.validate_metric_name(name), self.generate_label_key(labels)))
        return float(value) if value is not None else 0.0

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
        fragment = self.series_label_key(labels, "quantile")
        value = float(value)
        observations = self._key("summary", name, fragment, "values")
        pipe = self.redis.pipeline()
        pipe.incr(self._key("summary", name, fragment, "count"))
        pipe.incrbyfloat(self._key("summary", name, fragment, "sum"), value)
        pipe.rpush(observations, repr(value))
        pipe.ltrim(observations, -SUMMARY_RETENTION, -1)
        pipe.sadd(self._index("summary", name), fragment)
        pipe.execute()

    @guarded("Failed to get summary sum", default=0.0)
    def get_summary_sum(self, name: str, labels: Labels = None) -> float:
        key = self._key("summary", self.validate_metric_name(name), self.series_label_key(labels, "quantile"), "sum")
        value = self.redis.get(key)
        return float(value) if value is not None else 0.0

    @guarded("Failed to get summary count", default=0)
    def get_summary_count(self, name: str, labels: Labels = None) -> int:
        key = self._key("summary", self.validate_metric_name(name), self.series_label_key(labels, "quantile"), "count")
        value = self.redis.get(key)
        return int(value) if value is not None else 0

    # Unique tracking

    def _dated_fragment(self, labels: Labels) -> str:
        dated = dict(labels or {})
        dated['date'] = self._clock().isoformat()
        return self.generate_label_key(dated)

    @guarded("Failed to track unique value")
    def track_unique(self, name: str, identifier: str, labels: Labels = None) -> None:
        metric = self.unique_name(name)
        fragment = self._dated_fragment(labels)
        members = self._key("unique", metric, fragment)
        added = self.redis.sadd(members, str(identifier))

        pipe = self.redis.pipeline()
        pipe.expire(members, self.ttl)
        if added:
            count = self._key("unique", metric, fragment, "count")
            pipe.incr(count)
            pipe.expire(count, self.ttl)
        pipe.sadd(self._index("unique"), metric)
        pipe.sadd(self._index("unique", metric), fragment)
        pipe.expire(self._index("unique", metric), self.ttl)
        pipe.execute()

    @guarded("Failed to get unique count", default=0)
    def get_unique_count(self, name: str, labels: Labels = None) -> int:
        """Distinct identifiers tracked today for ``name`` and ``labels``."""
        value = self.redis.get(self._key("unique", self.unique_name(name), self._dated_fragment(labels), "count"))
        return int(value) if value is not None else 0

    # Exposition

    def _read_histogram(self, name: str, fragment: str, bounds) -> HistogramSample:
        keys = [self._key("histogram", name, fragment, "count"), self._key("histogram", name, fragment, "sum")]
        keys.extend(self._key("histogram", name, fragment, f"bucket:{format_value(b)}") for b in bounds)
        count, total, *bucket_counts = self.redis.mget(keys)
        buckets = {
            bound: int(stored)
            for bound, stored in zip(bounds, bucket_counts)
            if stored is not None
        }
        return HistogramSample(
            count=int(count or 0),
            sum=float(total or 0.0),
            buckets=buckets,
        )

    def snapshot(self) -> MetricsSnapshot:
        snapshot = MetricsSnapshot(descriptors=self.registry.all())

        for descriptor in snapshot.of_type(MetricType.COUNTER):
            series = self._read_series("counter", descriptor.name, int)
            if series:
                snapshot.counters[descriptor.name] = series

        for descriptor in snapshot.of_type(MetricType.GAUGE):
            series = self._read_series("gauge", descriptor.name, float)
            if series:
                snapshot.gauges[descriptor.name] = series

        for descriptor in snapshot.of_type(MetricType.HISTOGRAM):
            name = descriptor.name
            samples = {
                fragment: self._read_histogram(name, fragment, descriptor.buckets)
                for fragment in self._fragments("histogram", name)
            }
            if samples:
                snapshot.histograms[name] = samples

        for descriptor in snapshot.of_type(MetricType.SUMMARY):
            name = descriptor.name
            samples = {}
            for fragment in self._fragments("summary", name):
                count, total = self.redis.mget(
                    self._key("summary", name, fragment, "count"),
                    self._key("summary", name, fragment, "sum"),
                )
                samples[fragment] = SummarySample(count=int(count or 0), sum=float(total or 0.0))
            if samples:
                snapshot.summaries[name] = samples

        for metric in sorted(_text(m) for m in self.redis.smembers(self._index("unique"))):
            series = self._read_series("unique", metric, int, suffix="count")
            if series:
                snapshot.uniques[metric] = series

        return snapshot

    def _read_series(self, kind: str, name: str, convert, suffix: Optional[str] = None) -> Dict[str, object]:
        fragments = self._fragments(kind, name)
        if not fragments:
            return {}
        values = self.redis.mget([self._key(kind, name, fragment, suffix) for fragment in fragments])
        # Expired unique keys leave their fragment behind in the index.
        return {
            fragment: convert(value)
            for fragment, value in zip(fragments, values)
            if value is not None
        }

    def flush_metrics(self) -> bool:
        try:
            keys = list(self.redis.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self.redis.delete(*keys)
            super().flush_metrics()
            self.logger.info("Redis metrics flushed", keys_deleted=len(keys), prefix=self.prefix)
            return True
        except Exception as e:
            self.logger.error("Failed to flush metrics", error=str(e), prefix=self.prefix)
            return False

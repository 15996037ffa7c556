"""
Metric metadata: one descriptor per metric name.

Descriptors are created once at registration time and shared by every label
combination recorded under that name.
"""
import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .exceptions import StorageDriverError

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

DEFAULT_QUANTILES = {0.5: 0.05, 0.9: 0.01, 0.99: 0.001}


class MetricType(str, Enum):
    """The closed set of metric kinds."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"
    GAUGE = "gauge"
    SUMMARY = "summary"


@dataclass(frozen=True)
class MetricDescriptor:
    """Registered metadata for a metric name."""

    name: str
    help: str
    kind: MetricType
    label_names: Tuple[str, ...] = ()
    buckets: Tuple[float, ...] = ()
    quantiles: Dict[float, float] = field(default_factory=dict)


def normalize_buckets(buckets: Optional[Iterable[float]] = None) -> Tuple[float, ...]:
    """Sort and deduplicate bucket bounds, always ending with +Inf."""
    values = sorted({float(bound) for bound in (buckets or DEFAULT_BUCKETS)})
    if not values or values[-1] != math.inf:
        values.append(math.inf)
    return tuple(values)


class DescriptorRegistry:
    """Thread-safe, insertion-ordered store of metric descriptors."""

    def __init__(self):
        self._descriptors: Dict[str, MetricDescriptor] = {}
        self._lock = threading.Lock()

    def register(self, descriptor: MetricDescriptor) -> MetricDescriptor:
        """
        Record a descriptor, or return the one already registered.

        Raises:
            StorageDriverError: if the name is taken by another metric type
        """
        with self._lock:
            existing = self._descriptors.get(descriptor.name)
            if existing is None:
                self._descriptors[descriptor.name] = descriptor
                return descriptor
            if existing.kind is not descriptor.kind:
                raise StorageDriverError(
                    f"Metric {descriptor.name} already registered as a different type "
                    f"({existing.kind.value})",
                    metric_name=descriptor.name,
                )
            return existing

    def get(self, name: str) -> Optional[MetricDescriptor]:
        return self._descriptors.get(name)

    def of_type(self, kind: MetricType) -> List[MetricDescriptor]:
        """Descriptors of one kind, in registration order."""
        with self._lock:
            return [d for d in self._descriptors.values() if d.kind is kind]

    def all(self) -> List[MetricDescriptor]:
        with self._lock:
            return list(self._descriptors.values())

    def clear(self) -> None:
        with self._lock:
            self._descriptors.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

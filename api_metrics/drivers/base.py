"""
Storage driver contract and the shared base implementation.

:class:`StorageDriver` is the contract consumed by the collector, the
middleware and the CLI. :class:`AbstractStorageDriver` adds what every
backend shares: name and label validation, metric registration, and the
render-or-degrade behaviour of :meth:`get_metrics`.
"""
import inspect
from abc import ABC, abstractmethod
from functools import wraps
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..exceptions import StorageDriverError
from ..exposition import MetricsSnapshot, render_error, render_snapshot
from ..logging import get_logger
from ..naming import (
    RESERVED_LABEL_NAMES,
    Diagnostic,
    check_label_name,
    check_label_names,
    check_metric_name,
    encode_labels,
    normalize_metric_name,
    rename_reserved_label,
)
from ..registry import (
    DEFAULT_BUCKETS,
    DEFAULT_QUANTILES,
    DescriptorRegistry,
    MetricDescriptor,
    MetricType,
    normalize_buckets,
)

Labels = Optional[Mapping[str, Any]]

HISTOGRAM_UNIT_SUFFIXES = (
    '_seconds', '_bytes', '_ratio', '_percent', '_count', '_info',
    '_total', '_celsius', '_meters', '_volts', '_amperes', '_joules', '_grams',
)

_CONTEXT_ARGUMENTS = ("labels", "value", "identifier")


def guarded(message: str, default: Any = None):
    """
    Keep a driver operation from raising into the caller.

    Any exception is logged at error level with the metric name and the
    call's labels/value/identifier, and ``default`` is returned instead.
    """
    def decorator(func):
        signature = inspect.signature(func)

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except Exception as e:
                try:
                    arguments = signature.bind_partial(self, *args, **kwargs).arguments
                except TypeError:
                    arguments = {}
                context = {k: arguments[k] for k in _CONTEXT_ARGUMENTS if k in arguments}
                self.logger.error(
                    message,
                    metric=arguments.get("name"),
                    error=str(e),
                    error_type=type(e).__name__,
                    **context
                )
                return default

        return wrapper
    return decorator


class StorageDriver(ABC):
    """Contract implemented by every metrics storage backend."""

    @abstractmethod
    def register_counter(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> MetricDescriptor:
        """Register a counter; idempotent for the same name and type."""

    @abstractmethod
    def register_histogram(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        buckets: Optional[Iterable[float]] = None
    ) -> MetricDescriptor:
        """Register a histogram with the given bucket upper bounds."""

    @abstractmethod
    def register_gauge(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> MetricDescriptor:
        """Register a gauge."""

    @abstractmethod
    def register_summary(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> MetricDescriptor:
        """Register a summary with quantile -> error tolerance settings."""

    @abstractmethod
    def get_descriptor(self, name: str) -> Optional[MetricDescriptor]:
        """Registered descriptor for ``name``, or None."""

    @abstractmethod
    def increment_counter(self, name: str, labels: Labels = None, value: int = 1) -> None:
        """Add ``value`` (at least 1) to a counter."""

    @abstractmethod
    def get_counter_value(self, name: str, labels: Labels = None) -> int:
        """Current counter value, 0 when never incremented."""

    @abstractmethod
    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        buckets: Optional[Iterable[float]] = None
    ) -> None:
        """Record one histogram observation."""

    @abstractmethod
    def get_histogram_sum(self, name: str, labels: Labels = None) -> float:
        """Sum of histogram observations."""

    @abstractmethod
    def get_histogram_count(self, name: str, labels: Labels = None) -> int:
        """Number of histogram observations."""

    @abstractmethod
    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        """Overwrite a gauge value."""

    @abstractmethod
    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        """Add to a gauge."""

    @abstractmethod
    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        """Subtract from a gauge."""

    @abstractmethod
    def get_gauge_value(self, name: str, labels: Labels = None) -> float:
        """Current gauge value, 0.0 when never set."""

    @abstractmethod
    def observe_summary(
        self,
        name: str,
        value: float,
        labels: Labels = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> None:
        """Record one summary observation."""

    @abstractmethod
    def get_summary_sum(self, name: str, labels: Labels = None) -> float:
        """Sum of summary observations."""

    @abstractmethod
    def get_summary_count(self, name: str, labels: Labels = None) -> int:
        """Number of summary observations."""

    @abstractmethod
    def track_unique(self, name: str, identifier: str, labels: Labels = None) -> None:
        """Count ``identifier`` once per day for the label set."""

    @abstractmethod
    def get_metrics(self) -> str:
        """All metrics in the text exposition format."""

    @abstractmethod
    def flush_metrics(self) -> bool:
        """Drop all stored data and metadata; False on failure."""


class AbstractStorageDriver(StorageDriver):
    """Base class for all storage drivers."""

    default_buckets = DEFAULT_BUCKETS

    def __init__(self, logger=None):
        self.logger = logger or get_logger(__name__)
        self.registry = DescriptorRegistry()

    # Validation

    def _report(self, diagnostics: List[Diagnostic]) -> None:
        for diagnostic in diagnostics:
            getattr(self.logger, diagnostic.level)(diagnostic.message, **diagnostic.context)

    def validate_metric_name(self, name: str) -> str:
        """Return a valid metric name, logging any correction."""
        corrected, diagnostics = check_metric_name(name)
        self._report(diagnostics)
        return corrected

    def validate_label_name(self, label: str) -> str:
        corrected, diagnostics = check_label_name(label)
        self._report(diagnostics)
        return corrected

    def validate_label_names(self, labels: Iterable[str]) -> List[str]:
        corrected, diagnostics = check_label_names(labels)
        self._report(diagnostics)
        return corrected

    def generate_label_key(self, labels: Labels) -> str:
        """Encode labels as a ``{k="v",...}`` fragment ('' when empty)."""
        fragment, diagnostics = encode_labels(labels)
        self._report(diagnostics)
        return fragment

    def series_label_key(self, labels: Labels, reserved: str) -> str:
        """Label fragment for a histogram or summary series, with ``reserved`` moved aside."""
        labels, diagnostics = rename_reserved_label(labels, reserved)
        self._report(diagnostics)
        return self.generate_label_key(labels)

    def counter_name(self, name: str) -> str:
        """Validated counter name with the ``_total`` suffix."""
        return normalize_metric_name(self.validate_metric_name(name), "counter")

    def unique_name(self, name: str) -> str:
        """Validated ``unique_<name>_total`` name for unique tracking."""
        return normalize_metric_name(self.validate_metric_name(name), "unique")

    def _reject_reserved_labels(self, name: str, label_names: List[str]) -> None:
        for label in label_names:
            if label in RESERVED_LABEL_NAMES:
                message = (
                    f'The "{label}" label is reserved for histogram buckets and summary '
                    f'quantiles and should not be manually specified'
                )
                self.logger.error(message, name=name, label=label)
                raise StorageDriverError(message, metric_name=name)

    # Registration

    def register_counter(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> MetricDescriptor:
        validated_name = self.validate_metric_name(name)
        validated_labels = self.validate_label_names(label_names or [])
        self._reject_reserved_labels(validated_name, validated_labels)

        if not validated_name.endswith('_total'):
            self.logger.info(
                f'Counter metric "{validated_name}" should have _total suffix according to '
                f'Prometheus standards. Adding automatically.',
                name=validated_name
            )
            validated_name = normalize_metric_name(validated_name, "counter")

        if validated_name.endswith('_count_total') or validated_name.endswith('_sum_total'):
            self.logger.warning(
                f'Counter metric "{validated_name}" appears to contain _count or _sum which are '
                f'reserved for histogram suffixes. Consider using a different name.',
                name=validated_name
            )

        return self.registry.register(MetricDescriptor(
            name=validated_name,
            help=help,
            kind=MetricType.COUNTER,
            label_names=tuple(validated_labels),
        ))

    def register_histogram(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        buckets: Optional[Iterable[float]] = None
    ) -> MetricDescriptor:
        validated_name = self.validate_metric_name(name)
        validated_labels = self.validate_label_names(label_names or [])

        if not validated_name.endswith(HISTOGRAM_UNIT_SUFFIXES):
            self.logger.warning(
                f'Histogram metric "{validated_name}" should include a unit suffix '
                f'(e.g., _seconds, _bytes) according to Prometheus standards.',
                name=validated_name
            )

        self._reject_reserved_labels(validated_name, validated_labels)

        return self.registry.register(MetricDescriptor(
            name=validated_name,
            help=help,
            kind=MetricType.HISTOGRAM,
            label_names=tuple(validated_labels),
            buckets=normalize_buckets(buckets or self.default_buckets),
        ))

    def register_gauge(self, name: str, help: str, label_names: Optional[Iterable[str]] = None) -> MetricDescriptor:
        validated_name = self.validate_metric_name(name)
        validated_labels = self.validate_label_names(label_names or [])
        self._reject_reserved_labels(validated_name, validated_labels)

        return self.registry.register(MetricDescriptor(
            name=validated_name,
            help=help,
            kind=MetricType.GAUGE,
            label_names=tuple(validated_labels),
        ))

    def register_summary(
        self,
        name: str,
        help: str,
        label_names: Optional[Iterable[str]] = None,
        quantiles: Optional[Mapping[float, float]] = None
    ) -> MetricDescriptor:
        validated_name = self.validate_metric_name(name)
        validated_labels = self.validate_label_names(label_names or [])
        self._reject_reserved_labels(validated_name, validated_labels)

        return self.registry.register(MetricDescriptor(
            name=validated_name,
            help=help,
            kind=MetricType.SUMMARY,
            label_names=tuple(validated_labels),
            quantiles=dict(quantiles or DEFAULT_QUANTILES),
        ))

    def get_descriptor(self, name: str) -> Optional[MetricDescriptor]:
        descriptor = self.registry.get(name)
        if descriptor is None:
            validated, _ = check_metric_name(name)
            descriptor = self.registry.get(validated) or self.registry.get(
                normalize_metric_name(validated, "counter")
            )
        return descriptor

    def bucket_bounds(self, name: str, buckets: Optional[Iterable[float]] = None) -> tuple:
        """Buckets for a histogram's first observation of a label set."""
        if buckets:
            return normalize_buckets(buckets)
        descriptor = self.registry.get(name)
        if descriptor is not None and descriptor.kind is MetricType.HISTOGRAM:
            return descriptor.buckets
        return normalize_buckets(self.default_buckets)

    def summary_quantiles(self, name: str, quantiles: Optional[Mapping[float, float]] = None) -> Dict[float, float]:
        if quantiles:
            return dict(quantiles)
        descriptor = self.registry.get(name)
        if descriptor is not None and descriptor.kind is MetricType.SUMMARY:
            return dict(descriptor.quantiles)
        return dict(DEFAULT_QUANTILES)

    # Exposition

    @abstractmethod
    def snapshot(self) -> MetricsSnapshot:
        """Collect a point-in-time copy of metadata and data for rendering."""

    def get_metrics(self) -> str:
        try:
            return render_snapshot(self.snapshot())
        except Exception as e:
            self.logger.error('Failed to get metrics', error=str(e), error_type=type(e).__name__)
            return render_error(e)

    def flush_metrics(self) -> bool:
        """Reset registered metadata. Drivers extend this to clear their data."""
        self.registry.clear()
        return True

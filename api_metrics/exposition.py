"""
Prometheus text exposition format rendering.

Drivers collect a :class:`MetricsSnapshot` (a point-in-time copy of their
registry and accumulators) and hand it to :func:`render_snapshot`, so every
backend produces byte-identical output for the same data.
"""
import math
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .naming import escape_help_text, label_fragment_inner
from .registry import MetricDescriptor, MetricType

CONTENT_TYPE = "text/plain; version=0.0.4"

_NAN_STRINGS = ("nan",)
_POS_INF_STRINGS = ("inf", "+inf", "infinity")
_NEG_INF_STRINGS = ("-inf", "-infinity")


def format_value(value: Any) -> str:
    """Format a sample value using the exposition format's numeric rules."""
    if value is None or (isinstance(value, str) and value == ''):
        return '0'

    if isinstance(value, bool):
        return '1' if value else '0'

    if isinstance(value, str):
        lowered = value.lower()
        if lowered in _NAN_STRINGS:
            return 'NaN'
        if lowered in _POS_INF_STRINGS:
            return '+Inf'
        if lowered in _NEG_INF_STRINGS:
            return '-Inf'
        return value

    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if math.isinf(value):
            return '+Inf' if value > 0 else '-Inf'
        magnitude = abs(value)
        if magnitude > 1e21 or 0 < magnitude < 1e-6:
            return '%.16e' % value
        return '%.16g' % value

    if isinstance(value, int):
        return str(value)

    return str(value)


@dataclass
class HistogramSample:
    """Count, sum and cumulative per-bucket counts for one label set."""

    count: int = 0
    sum: float = 0.0
    buckets: Dict[float, int] = field(default_factory=dict)

    def cumulative_at(self, bound: float) -> int:
        """Observations at or below ``bound``."""
        if math.isinf(bound) and bound > 0:
            return self.count
        if bound in self.buckets:
            return self.buckets[bound]
        # Bound not tracked for this label set: use the closest tracked bound below it.
        tracked = sorted(self.buckets)
        index = bisect_right(tracked, bound)
        return self.buckets[tracked[index - 1]] if index else 0


@dataclass
class SummarySample:
    count: int = 0
    sum: float = 0.0


@dataclass
class MetricsSnapshot:
    """
    Point-in-time view of a driver's registry and data.

    Every data mapping is ``{metric_name: {label_fragment: value}}``.
    """

    descriptors: List[MetricDescriptor] = field(default_factory=list)
    counters: Dict[str, Dict[str, int]] = field(default_factory=dict)
    histograms: Dict[str, Dict[str, HistogramSample]] = field(default_factory=dict)
    gauges: Dict[str, Dict[str, float]] = field(default_factory=dict)
    summaries: Dict[str, Dict[str, SummarySample]] = field(default_factory=dict)
    uniques: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def of_type(self, kind: MetricType) -> List[MetricDescriptor]:
        return [d for d in self.descriptors if d.kind is kind]


def _header(name: str, help_text: str, kind: str) -> List[str]:
    return [f"# HELP {name} {escape_help_text(help_text)}", f"# TYPE {name} {kind}"]


def _with_le(fragment: str, le: str) -> str:
    inner = label_fragment_inner(fragment)
    return f'{inner},le="{le}"' if inner else f'le="{le}"'


def _render_counters(snapshot: MetricsSnapshot) -> List[str]:
    lines = []
    for descriptor in snapshot.of_type(MetricType.COUNTER):
        name = descriptor.name
        lines.extend(_header(name, descriptor.help, "counter"))
        series = snapshot.counters.get(name)
        if not series:
            lines.append(f"{name} 0")
            continue
        for fragment, value in series.items():
            lines.append(f"{name}{fragment} {format_value(value)}")
    return lines


def _render_histograms(snapshot: MetricsSnapshot) -> List[str]:
    lines = []
    for descriptor in snapshot.of_type(MetricType.HISTOGRAM):
        name = descriptor.name
        lines.extend(_header(name, descriptor.help, "histogram"))
        for fragment, sample in snapshot.histograms.get(name, {}).items():
            processed = set()
            for bound in descriptor.buckets:
                le = format_value(bound)
                if le in processed:
                    continue
                processed.add(le)
                lines.append(f"{name}_bucket{{{_with_le(fragment, le)}}} {sample.cumulative_at(bound)}")
            if '+Inf' not in processed:
                lines.append(f"{name}_bucket{{{_with_le(fragment, '+Inf')}}} {sample.count}")
            lines.append(f"{name}_sum{fragment} {format_value(sample.sum)}")
            lines.append(f"{name}_count{fragment} {format_value(sample.count)}")
    return lines


def _render_gauges(snapshot: MetricsSnapshot) -> List[str]:
    lines = []
    for descriptor in snapshot.of_type(MetricType.GAUGE):
        name = descriptor.name
        lines.extend(_header(name, descriptor.help, "gauge"))
        series = snapshot.gauges.get(name)
        if not series:
            lines.append(f"{name} 0")
            continue
        for fragment, value in series.items():
            lines.append(f"{name}{fragment} {format_value(value)}")
    return lines


def _render_summaries(snapshot: MetricsSnapshot) -> List[str]:
    lines = []
    for descriptor in snapshot.of_type(MetricType.SUMMARY):
        name = descriptor.name
        lines.extend(_header(name, descriptor.help, "summary"))
        for fragment, sample in snapshot.summaries.get(name, {}).items():
            lines.append(f"{name}_sum{fragment} {format_value(sample.sum)}")
            lines.append(f"{name}_count{fragment} {format_value(sample.count)}")
    return lines


def _unique_base_name(name: str) -> str:
    base = name[len('unique_'):] if name.startswith('unique_') else name
    return base[:-len('_total')] if base.endswith('_total') else base


def _render_uniques(snapshot: MetricsSnapshot) -> List[str]:
    lines = []
    for name, series in snapshot.uniques.items():
        lines.extend(_header(name, f"Unique {_unique_base_name(name)} count", "counter"))
        for fragment, count in series.items():
            lines.append(f"{name}{fragment} {format_value(count)}")
    return lines


def render_snapshot(snapshot: MetricsSnapshot) -> str:
    """Render a snapshot as a complete exposition body ending in a newline."""
    lines = []
    lines.extend(_render_counters(snapshot))
    lines.extend(_render_histograms(snapshot))
    lines.extend(_render_gauges(snapshot))
    lines.extend(_render_summaries(snapshot))
    lines.extend(_render_uniques(snapshot))
    return "\n".join(lines) + "\n"


def render_error(error: BaseException) -> str:
    """The single comment line returned instead of a partial body."""
    return f"# Error generating metrics: {error}\n"

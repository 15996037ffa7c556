"""
Prometheus naming rules for metric names, label names and label sets.

Every function here is pure: instead of logging, it returns the corrected
value together with a list of :class:`Diagnostic` records describing what
was changed. Storage drivers decide how to report them.

Usage:
    name, diagnostics = check_metric_name("http-requests")
    # name == "http_requests", one warning diagnostic

    fragment, _ = encode_labels({"method": "GET", "status": "200"})
    # fragment == '{method="GET",status="200"}'
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

METRIC_NAME_PATTERN = re.compile(r'^[a-zA-Z_](:)?[a-zA-Z0-9_]*$')
LABEL_NAME_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')
DATE_PATTERN = re.compile(r'(20\d{2}[-_]?\d{2}[-_]?\d{2})')

_DASH_OR_DOT = re.compile(r'[-.]')
_VALID_FIRST_CHAR = re.compile(r'^[a-zA-Z_]')

# Synthesized by the renderer for histogram buckets and summary quantiles.
RESERVED_LABEL_NAMES = ("le", "quantile")

METRIC_NAME_FALLBACK_PREFIX = "metric_"
LABEL_NAME_FALLBACK_PREFIX = "label_"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal note produced while normalizing a name."""

    level: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)


def check_metric_name(name: str) -> Tuple[str, List[Diagnostic]]:
    """Correct a metric name so it matches the exposition grammar."""
    diagnostics = []
    corrected = _DASH_OR_DOT.sub('_', name)

    if corrected != name:
        diagnostics.append(Diagnostic(
            "warning",
            f'Invalid metric name: "{name}". Metric names must match '
            '[a-zA-Z_][a-zA-Z0-9_]* with optional leading colon. '
            'Dashes and dots converted to underscores automatically.',
            {"name": name},
        ))

    if not METRIC_NAME_PATTERN.match(corrected):
        diagnostics.append(Diagnostic(
            "warning",
            f'Invalid metric name: "{name}". Metric names must match '
            '[a-zA-Z_][a-zA-Z0-9_]* with optional leading colon. '
            'Attempting to fix automatically.',
            {"name": name},
        ))
        corrected = re.sub(r'[^a-zA-Z0-9_:]', '_', corrected)
        if not _VALID_FIRST_CHAR.match(corrected):
            corrected = METRIC_NAME_FALLBACK_PREFIX + corrected

    if ':' in corrected and not corrected.startswith(':'):
        diagnostics.append(Diagnostic(
            "warning",
            f'Invalid metric name: "{name}". Colons are only allowed at the '
            'beginning for namespaces. Fixing automatically.',
            {"name": name},
        ))
        corrected = corrected.replace(':', '_')

    if DATE_PATTERN.search(corrected):
        diagnostics.append(Diagnostic(
            "warning",
            f'Metric name "{name}" appears to contain a date. '
            'Dates should be in labels, not in metric names.',
            {"name": name},
        ))

    return corrected, diagnostics


def check_label_name(label: str) -> Tuple[str, List[Diagnostic]]:
    """Correct a label name so it matches the exposition grammar."""
    diagnostics = []
    corrected = _DASH_OR_DOT.sub('_', label)

    if corrected != label:
        diagnostics.append(Diagnostic(
            "warning",
            f'Invalid label name: "{label}". Label names must match '
            '[a-zA-Z_][a-zA-Z0-9_]*. Dashes and dots converted to '
            'underscores automatically.',
            {"label": label},
        ))

    if not LABEL_NAME_PATTERN.match(corrected):
        diagnostics.append(Diagnostic(
            "warning",
            f'Invalid label name: "{label}". Label names must match '
            '[a-zA-Z_][a-zA-Z0-9_]*. Attempting to fix automatically.',
            {"label": label},
        ))
        corrected = re.sub(r'[^a-zA-Z0-9_]', '_', corrected)
        if not _VALID_FIRST_CHAR.match(corrected):
            corrected = LABEL_NAME_FALLBACK_PREFIX + corrected

    # "__name__" is caught here as well and becomes "label_name__".
    if corrected.startswith('__'):
        diagnostics.append(Diagnostic(
            "warning",
            f'Invalid label name: "{label}". Label names starting with __ '
            'are reserved for internal use. Fixing automatically.',
            {"label": label},
        ))
        corrected = LABEL_NAME_FALLBACK_PREFIX + corrected[2:]

    return corrected, diagnostics


def check_label_names(labels: Iterable[str]) -> Tuple[List[str], List[Diagnostic]]:
    """Correct a list of declared label names, keeping their order."""
    names = []
    diagnostics = []
    for label in labels:
        if label in RESERVED_LABEL_NAMES:
            names.append(label)
            continue
        corrected, found = check_label_name(label)
        names.append(corrected)
        diagnostics.extend(found)
    return names, diagnostics


def escape_label_value(value: Any) -> str:
    """Escape a label value for the text format."""
    if value is None:
        return ''
    text = str(value)
    # Backslash first so the escapes added below are not doubled.
    return (
        text.replace('\\', '\\\\')
        .replace('"', '\\"')
        .replace('\n', '\\n')
        .replace('\r', '\\r')
    )


def escape_help_text(text: Any) -> str:
    """Escape HELP text: backslash and newline only."""
    return str(text).replace('\\', '\\\\').replace('\n', '\\n')


def rename_reserved_label(
    labels: Optional[Mapping[str, Any]],
    reserved: str
) -> Tuple[Optional[Mapping[str, Any]], List[Diagnostic]]:
    """
    Move a caller-supplied ``reserved`` label to ``exported_<reserved>``.

    The renderer adds ``le`` to histogram buckets and ``quantile`` to summary
    quantiles itself, so a caller label of the same name would be duplicated.
    """
    if not labels or not any(str(label) == reserved for label in labels):
        return labels, []

    renamed = {}
    for label, value in labels.items():
        renamed[f"exported_{reserved}" if str(label) == reserved else label] = value
    return renamed, [Diagnostic(
        "warning",
        f'Label "{reserved}" is added by the renderer. Renamed to "exported_{reserved}".',
        {"label": reserved},
    )]


def encode_labels(labels: Optional[Mapping[str, Any]]) -> Tuple[str, List[Diagnostic]]:
    """
    Encode a label mapping as a ``{name="value",...}`` fragment.

    Labels keep the caller's iteration order. An empty mapping encodes to an
    empty string so callers can append the fragment straight to a metric name.
    """
    if not labels:
        return '', []

    parts = []
    diagnostics = []
    for label, value in labels.items():
        name, found = check_label_name(str(label))
        diagnostics.extend(found)
        parts.append(f'{name}="{escape_label_value(value)}"')

    return '{' + ','.join(parts) + '}', diagnostics


def normalize_metric_name(name: str, metric_type: str = "counter") -> str:
    """
    Apply type-specific suffix and prefix conventions to a validated name.

    Counters end in ``_total``; unique trackers are exposed as
    ``unique_<name>_total``.
    """
    clean = name

    if metric_type == "counter" and not clean.endswith('_total'):
        clean += '_total'

    while clean.endswith('_total_total'):
        clean = clean[:-len('_total')]

    # Leftovers from key suffixes appended by remote stores.
    for suffix in (':count', '_count', '_sum:'):
        if clean.endswith(suffix):
            clean = clean[:-len(suffix)]

    if metric_type == "unique":
        if not clean.startswith('unique_'):
            clean = 'unique_' + clean
        if not clean.endswith('_total'):
            clean += '_total'

    return clean


def storage_key(kind: str, name: str, label_fragment: str = '', suffix: Optional[str] = None) -> str:
    """Build the ``<kind>:<name><labels>[:<suffix>]`` key used by remote stores."""
    key = f"{kind}:{name}{label_fragment}"
    if suffix:
        key += f":{suffix}"
    return key


def label_fragment_inner(fragment: str) -> str:
    """Return the label list of a fragment without its braces."""
    if fragment.startswith('{') and fragment.endswith('}'):
        return fragment[1:-1]
    return fragment

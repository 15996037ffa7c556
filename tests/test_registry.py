"""Tests for metric registration rules."""
import math

import pytest
from structlog.testing import capture_logs

from api_metrics.exceptions import StorageDriverError
from api_metrics.registry import (
    DEFAULT_BUCKETS,
    DescriptorRegistry,
    MetricDescriptor,
    MetricType,
    normalize_buckets,
)


def test_normalize_buckets_sorts_dedupes_and_appends_inf():
    assert normalize_buckets([1, 0.5, 1.0, 0.1]) == (0.1, 0.5, 1.0, math.inf)
    assert normalize_buckets([0.5, math.inf]) == (0.5, math.inf)
    assert normalize_buckets() == tuple(DEFAULT_BUCKETS) + (math.inf,)


def test_descriptor_registry_is_idempotent_per_kind():
    registry = DescriptorRegistry()
    first = registry.register(MetricDescriptor("hits_total", "Hits", MetricType.COUNTER))
    again = registry.register(MetricDescriptor("hits_total", "Other help", MetricType.COUNTER))
    assert again is first
    assert len(registry) == 1

    with pytest.raises(StorageDriverError, match="already registered as a different type"):
        registry.register(MetricDescriptor("hits_total", "Hits", MetricType.GAUGE))


def test_counter_gains_total_suffix(driver):
    """Counters are exposed with the _total suffix."""
    with capture_logs() as logs:
        descriptor = driver.register_counter("foo", "Foo counter")
    assert descriptor.name == "foo_total"
    assert any("should have _total suffix" in log["event"] and log["log_level"] == "info" for log in logs)
    assert "# TYPE foo_total counter" in driver.get_metrics()


def test_counter_with_histogram_suffix_warns(memory_driver):
    with capture_logs() as logs:
        memory_driver.register_counter("request_count_total", "Requests")
    assert any(log["log_level"] == "warning" and "_count or _sum" in log["event"] for log in logs)


def test_histogram_without_unit_warns(memory_driver):
    with capture_logs() as logs:
        memory_driver.register_histogram("request_duration", "Duration")
    assert any("should include a unit suffix" in log["event"] for log in logs)

    with capture_logs() as logs:
        memory_driver.register_histogram("request_duration_seconds", "Duration")
    assert logs == []


@pytest.mark.parametrize("register", ["register_counter", "register_histogram", "register_gauge", "register_summary"])
@pytest.mark.parametrize("label", ["le", "quantile"])
def test_reserved_labels_are_rejected(memory_driver, register, label):
    with capture_logs() as logs:
        with pytest.raises(StorageDriverError):
            getattr(memory_driver, register)("reserved_seconds_total", "Reserved", ["method", label])
    assert any(log["log_level"] == "error" for log in logs)
    assert memory_driver.get_descriptor("reserved_seconds_total") is None


def test_conflicting_registration_raises(driver):
    driver.register_gauge("queue_depth", "Depth")
    with pytest.raises(StorageDriverError):
        driver.register_histogram("queue_depth", "Depth")


def test_registration_is_idempotent(driver):
    first = driver.register_histogram("size_bytes", "Size", ["route"], [1, 10])
    second = driver.register_histogram("size_bytes", "Size", ["route"], [5])
    assert second is first
    assert first.buckets == (1.0, 10.0, math.inf)


def test_invalid_names_are_corrected_on_registration(memory_driver):
    with capture_logs() as logs:
        descriptor = memory_driver.register_gauge("queue-depth", "Depth", ["queue.name"])
    assert descriptor.name == "queue_depth"
    assert descriptor.label_names == ("queue_name",)
    assert len([log for log in logs if log["log_level"] == "warning"]) == 2


def test_get_descriptor(memory_driver):
    assert memory_driver.get_descriptor("missing") is None
    memory_driver.register_counter("hits", "Hits")
    assert memory_driver.get_descriptor("hits_total").kind is MetricType.COUNTER
    assert memory_driver.get_descriptor("hits").name == "hits_total"


def test_summary_defaults_quantiles(memory_driver):
    descriptor = memory_driver.register_summary("latency_seconds", "Latency")
    assert descriptor.quantiles == {0.5: 0.05, 0.9: 0.01, 0.99: 0.001}


def test_caller_le_label_is_renamed_on_histograms(driver, parse_samples):
    driver.register_histogram("wait_seconds", "Wait", buckets=[1])
    with capture_logs() as logs:
        driver.observe_histogram("wait_seconds", 0.5, {"le": "x"})

    assert logs[0]["log_level"] == "warning"
    assert logs[0]["label"] == "le"
    assert driver.get_histogram_count("wait_seconds", {"le": "x"}) == 1

    samples = parse_samples(driver.get_metrics())
    assert samples[("wait_seconds_bucket", (("exported_le", "x"), ("le", "1")))] == 1
    assert samples[("wait_seconds_count", (("exported_le", "x"),))] == 1


def test_caller_quantile_label_is_renamed_on_summaries(driver, parse_samples):
    driver.register_summary("payload_bytes", "Payload")
    driver.observe_summary("payload_bytes", 10, {"quantile": "p99"})

    assert driver.get_summary_count("payload_bytes", {"quantile": "p99"}) == 1
    samples = parse_samples(driver.get_metrics())
    assert samples[("payload_bytes_sum", (("exported_quantile", "p99"),))] == 10


@pytest.mark.parametrize("delta", [1.9, 0.5, -1])
def test_counter_rejects_fractional_and_negative_deltas(driver, delta):
    driver.register_counter("jobs_total", "Jobs")
    with capture_logs() as logs:
        driver.increment_counter("jobs_total", value=delta)
    assert driver.get_counter_value("jobs_total") == 0
    assert logs[-1]["event"] == "Failed to increment counter"
    assert "whole number" in logs[-1]["error"]


def test_whole_float_counter_delta_is_accepted(driver):
    driver.increment_counter("jobs_total", value=2.0)
    assert driver.get_counter_value("jobs_total") == 2

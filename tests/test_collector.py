"""Tests for the MetricsCollector facade, handles and exporter."""
import pytest
from structlog.testing import capture_logs

from api_metrics.config import MetricsSettings
from api_metrics.core import MetricsCollector, MetricsRegistry
from api_metrics.drivers import InMemoryDriver, NullDriver
from api_metrics.exceptions import StorageDriverError
from api_metrics.exporter import PrometheusExporter
from api_metrics.metrics import Counter, Gauge, Histogram, Summary


@pytest.fixture
def collector(settings, memory_driver):
    return MetricsCollector(memory_driver, settings)


def test_default_metrics_are_registered(collector):
    body = collector.get_metrics()
    for name in ("api_requests_total", "api_request_duration_seconds", "api_unique_users_total", "api_errors_total"):
        assert f"# HELP {name} " in body
    assert collector.driver.get_descriptor("api_request_duration_seconds").label_names == (
        "endpoint", "method", "status", "user_id",
    )


def test_driver_name_is_resolved_from_settings(settings):
    collector = MetricsCollector(settings=settings)
    assert isinstance(collector.driver, InMemoryDriver)


def test_falls_back_to_memory_driver(settings):
    with capture_logs() as logs:
        collector = MetricsCollector("redis", settings)
    assert isinstance(collector.driver, InMemoryDriver)
    assert logs[0]["event"] == "Failed to initialize metrics driver, falling back to in-memory storage"
    assert logs[0]["driver"] == "redis"


def test_registration_returns_handles(collector):
    counter = collector.register_counter("jobs", "Jobs", ["queue"])
    gauge = collector.register_gauge("depth", "Depth")
    histogram = collector.register_histogram("wait_seconds", "Wait", buckets=[1, 5])
    summary = collector.register_summary("payload_bytes", "Payload")

    assert isinstance(counter, Counter) and counter.name == "jobs_total"
    assert isinstance(gauge, Gauge)
    assert isinstance(histogram, Histogram) and histogram.buckets[:2] == (1.0, 5.0)
    assert isinstance(summary, Summary) and 0.99 in summary.quantiles

    counter.increment({"queue": "emails"}, 2)
    gauge.set(3)
    gauge.increment()
    histogram.observe(2)
    summary.observe(100)

    assert counter.get_value({"queue": "emails"}) == 2
    assert gauge.get_value() == 4.0
    assert histogram.get_count() == 1
    assert summary.get_sum() == 100.0
    assert collector.registry.get_metric("jobs") is counter
    assert collector.registry.get_metric("jobs_total") is counter


def test_conflicting_registration_raises(collector):
    collector.register_gauge("depth", "Depth")
    with pytest.raises(StorageDriverError):
        collector.register_counter("depth", "Depth")


def test_handle_registry_conflict_is_logged(memory_driver):
    registry = MetricsRegistry(memory_driver)
    registry.register_summary("payload_bytes", "Payload")
    with capture_logs() as logs:
        with pytest.raises(StorageDriverError):
            registry.register_histogram("payload_bytes", "Payload")
    assert logs[0]["log_level"] == "warning"
    assert set(registry.get_metrics()) == {"payload_bytes"}


def test_recording_through_collector(collector):
    labels = {"endpoint": "/api/users", "method": "GET", "status": "200", "user_id": "123"}
    collector.increment_counter("api_requests_total", labels)
    collector.increment_counter("api_requests_total", labels)
    collector.observe_histogram("api_request_duration_seconds", 0.2, labels)
    collector.set_gauge("depth", 5)
    collector.increment_gauge("depth", 1)
    collector.decrement_gauge("depth", 2)
    collector.observe_summary("payload_bytes", 10)
    collector.track_unique("users", "123")

    driver = collector.driver
    assert driver.get_counter_value("api_requests_total", labels) == 2
    assert driver.get_histogram_count("api_request_duration_seconds", labels) == 1
    assert driver.get_gauge_value("depth") == 4.0
    assert driver.get_summary_count("payload_bytes") == 1
    assert driver.get_unique_count("users") == 1


def test_record_request_counts_errors(collector):
    collector.record_request("get", "/api/users", 200, 0.01, user_id="42")
    collector.record_request("post", "/api/users", 422, 0.02, user_id="42")
    collector.record_request("get", "/api/crash", 500, 0.03, error_type="RuntimeError")

    driver = collector.driver
    assert driver.get_counter_value(
        "api_requests_total", {"endpoint": "/api/users", "method": "GET", "status": "200", "user_id": "42"}
    ) == 1
    assert driver.get_counter_value("api_errors_total", {
        "endpoint": "/api/users", "method": "POST", "status": "422", "error_type": "client_error", "user_id": "42",
    }) == 1
    assert driver.get_counter_value("api_errors_total", {
        "endpoint": "/api/crash", "method": "GET", "status": "500", "error_type": "RuntimeError", "user_id": "guest",
    }) == 1
    assert driver.get_unique_count("users", {"endpoint": "/api/users"}) == 1


def test_disabled_collector(settings, memory_driver):
    collector = MetricsCollector(memory_driver, settings.model_copy(update={"enabled": False}))
    assert collector.is_enabled() is False
    assert collector.get_metrics() == "# Metrics collection is disabled\n"

    collector.increment_counter("api_requests_total")
    handle = collector.register_counter("jobs", "Jobs")
    handle.increment()
    assert isinstance(handle.driver, NullDriver)
    assert memory_driver.get_counter_value("api_requests_total") == 0

    collector.set_enabled(True)
    collector.increment_counter("api_requests_total")
    assert memory_driver.get_counter_value("api_requests_total") == 1
    assert "api_requests_total 1" in collector.get_metrics()


@pytest.mark.parametrize("path, method, excluded", [
    ("/metrics", "GET", True),
    ("metrics", "GET", True),
    ("/health", "GET", True),
    ("/health/live", "GET", True),
    ("/api/users", "OPTIONS", True),
    ("/api/users", "options", True),
    ("/api/users", "GET", False),
    ("/metrics/extra", "GET", False),
])
def test_should_exclude_path(settings, memory_driver, path, method, excluded):
    settings = settings.model_copy(update={
        "excluded_paths": ["/metrics", "/health*"],
        "excluded_methods": ["OPTIONS"],
    })
    collector = MetricsCollector(memory_driver, settings)
    assert collector.should_exclude_path(path, method) is excluded


def test_flush_metrics_reregisters_defaults(collector):
    collector.register_counter("jobs", "Jobs")
    collector.increment_counter("jobs_total")
    collector.increment_counter("api_requests_total")

    assert collector.flush_metrics() is True
    body = collector.get_metrics()
    assert "jobs_total" not in body
    assert "api_requests_total 0" in body.splitlines()


def test_flush_failure_is_reported(collector, monkeypatch):
    monkeypatch.setattr(collector.driver, "flush_metrics", lambda: False)
    assert collector.flush_metrics() is False
    assert collector.registry.get_metric("api_requests_total") is not None


def test_get_metrics_failure_returns_comment(collector, monkeypatch):
    def broken():
        raise RuntimeError("store offline")

    monkeypatch.setattr(collector.driver, "get_metrics", broken)
    assert collector.get_metrics() == "# Error getting metrics: store offline\n"


def test_exporter(collector):
    exporter = PrometheusExporter(collector)
    assert exporter.content_type == "text/plain; version=0.0.4"
    assert exporter.export() == collector.get_metrics()


def test_exporter_failure_returns_comment():
    class Broken:
        def get_metrics(self):
            raise RuntimeError("nope")

    with capture_logs() as logs:
        assert PrometheusExporter(Broken()).export() == "# Error exporting metrics: nope\n"
    assert logs[0]["log_level"] == "error"


def test_null_driver_from_settings():
    settings = MetricsSettings(_env_file=None, logging_enabled=False, driver="null")
    collector = MetricsCollector(settings=settings)
    assert isinstance(collector.driver, NullDriver)
    assert collector.get_metrics().startswith("# HELP api_requests_total")

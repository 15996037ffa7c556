"""Tests for the timed decorator and MetricsCollector.time_operation."""
import pytest

from api_metrics.core import OPERATION_DURATION_METRIC, MetricsCollector, timed


@pytest.fixture
def collector(settings, memory_driver):
    return MetricsCollector(memory_driver, settings)


def _count(collector, operation, status="success", metric=OPERATION_DURATION_METRIC):
    return collector.driver.get_histogram_count(metric, {"operation": operation, "status": status})


def test_time_operation_records_success(collector):
    with collector.time_operation("rebuild_index"):
        pass
    assert _count(collector, "rebuild_index") == 1
    assert "# TYPE operation_duration_seconds histogram" in collector.get_metrics()


def test_time_operation_records_failure(collector):
    with pytest.raises(KeyError):
        with collector.time_operation("lookup"):
            raise KeyError("missing")
    assert _count(collector, "lookup", "failure") == 1
    assert _count(collector, "lookup") == 0


def test_timed_sync_function_with_explicit_collector(collector):
    @timed("sync_job", collector=collector)
    def job(x):
        return x * 2

    assert job(21) == 42
    assert job.__name__ == "job"
    assert _count(collector, "sync_job") == 1


def test_timed_default_operation_name(collector):
    @timed(collector=collector)
    def compute():
        return "done"

    compute()
    assert _count(collector, f"{__name__}.compute") == 1


def test_timed_custom_metric_name(collector):
    @timed("export", collector=collector, metric_name="export_duration_seconds")
    def export():
        return None

    export()
    assert _count(collector, "export", metric="export_duration_seconds") == 1


async def test_timed_async_function(collector):
    @timed("async_job", collector=collector)
    async def job():
        return "ok"

    assert await job() == "ok"
    assert _count(collector, "async_job") == 1


async def test_timed_async_failure(collector):
    @timed("async_fail", collector=collector)
    async def job():
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await job()
    assert _count(collector, "async_fail", "failure") == 1


def test_timed_uses_instance_collector(collector):
    class Service:
        def __init__(self, metrics_collector):
            self._metrics_collector = metrics_collector

        @timed("service_call")
        def call(self):
            return "called"

    assert Service(collector).call() == "called"
    assert _count(collector, "service_call") == 1


def test_timed_without_collector_runs_untimed():
    @timed("orphan")
    def orphan():
        return 7

    assert orphan() == 7


def test_timed_respects_disabled_collector(collector):
    collector.set_enabled(False)

    @timed("quiet", collector=collector)
    def quiet():
        return "still runs"

    assert quiet() == "still runs"
    assert _count(collector, "quiet") == 0

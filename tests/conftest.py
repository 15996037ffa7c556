"""Shared fixtures for the api-metrics test suite."""
from datetime import date

import fakeredis
import pytest
from prometheus_client.parser import text_string_to_metric_families

from api_metrics.config import MetricsSettings, get_settings
from api_metrics.drivers import InMemoryDriver, RedisDriver

FIXED_DAY = date(2024, 5, 17)


def _fixed_clock() -> date:
    return FIXED_DAY


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return MetricsSettings(_env_file=None, logging_enabled=False)


@pytest.fixture
def memory_driver():
    return InMemoryDriver(clock=_fixed_clock)


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def redis_driver(redis_client):
    return RedisDriver(redis_client, clock=_fixed_clock)


@pytest.fixture(params=["memory", "redis"])
def driver(request):
    """Each test using this fixture runs against both storage drivers."""
    if request.param == "memory":
        return request.getfixturevalue("memory_driver")
    return request.getfixturevalue("redis_driver")


@pytest.fixture
def parse_samples():
    """Parse an exposition body into ``{(sample_name, labels): value}``."""
    def parse(body: str):
        samples = {}
        for family in text_string_to_metric_families(body):
            for sample in family.samples:
                samples[(sample.name, tuple(sorted(sample.labels.items())))] = sample.value
        return samples
    return parse

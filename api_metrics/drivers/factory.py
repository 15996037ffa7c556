"""Storage driver selection by name."""
from typing import Optional

from ..config import MetricsSettings, get_settings
from ..exceptions import ConfigurationError, StorageDriverError
from .base import StorageDriver
from .decorators import LoggingDecorator
from .memory import InMemoryDriver
from .null import NullDriver
from .redis_driver import RedisDriver

MEMORY_DRIVER_NAMES = ("memory", "in_memory", "inmemory")


def create_storage_driver(
    driver: str,
    settings: Optional[MetricsSettings] = None,
    logger=None
) -> StorageDriver:
    """
    Build the storage driver named ``driver``.

    When ``settings.logging_enabled`` is set the driver is wrapped in a
    :class:`LoggingDecorator` logging at ``settings.log_level``.

    Raises:
        StorageDriverError: for an unknown driver name or an unreachable backend
        ConfigurationError: when the Redis driver has no URL configured
    """
    settings = settings or get_settings()
    kind = driver.lower()

    if kind == "redis":
        if not settings.redis_url:
            raise ConfigurationError(
                "The redis driver requires API_METRICS_REDIS_URL to be set",
                config_key="redis_url",
            )
        storage = RedisDriver.from_url(
            settings.redis_url,
            prefix=settings.redis_prefix,
            ttl=settings.redis_ttl,
            logger=logger,
        )
    elif kind in MEMORY_DRIVER_NAMES:
        storage = InMemoryDriver(logger)
    elif kind == "null":
        storage = NullDriver(logger)
    else:
        raise StorageDriverError(f"Unsupported driver type: {driver}", driver=driver)

    if settings.logging_enabled:
        storage = LoggingDecorator(storage, logger, settings.log_level)
    return storage

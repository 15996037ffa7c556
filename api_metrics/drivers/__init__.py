"""Storage drivers for metric data."""

from .base import AbstractStorageDriver, StorageDriver, guarded
from .decorators import LoggingDecorator, StorageDriverDecorator
from .factory import MEMORY_DRIVER_NAMES, create_storage_driver
from .memory import InMemoryDriver
from .null import NullDriver
from .redis_driver import RedisDriver

__all__ = [
    "StorageDriver",
    "AbstractStorageDriver",
    "guarded",
    "StorageDriverDecorator",
    "LoggingDecorator",
    "InMemoryDriver",
    "RedisDriver",
    "NullDriver",
    "create_storage_driver",
    "MEMORY_DRIVER_NAMES",
]

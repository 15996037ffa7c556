"""
Structured logging setup for the metrics library.

Drivers and the collector log through structlog loggers obtained with
:func:`get_logger`. Applications embedding the library normally configure
structlog themselves; :func:`setup_logging` is used by the ``api-metrics``
command line and by services that have no logging setup of their own.
"""
import logging
import sys
from typing import Any, Callable, Optional

import structlog
from structlog.types import EventDict

SERVICE_NAME = "api-metrics"

Processor = Callable[[Any, str, EventDict], EventDict]


def add_service_context(service_name: str = SERVICE_NAME) -> Processor:
    """Build a processor tagging every event with ``service``."""
    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault('service', service_name)
        return event_dict
    return processor


def setup_logging(
    service_name: str = SERVICE_NAME,
    log_level: Optional[str] = None,
    log_format: str = "json",
    enable_console: bool = True
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog on top of the standard logging module.

    Args:
        service_name: Value of the ``service`` key added to every event
        log_level: Logging level name; defaults to INFO
        log_format: 'json' for machine-readable lines, anything else for the console renderer
        enable_console: Write to stdout (otherwise stderr)
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_service_context(service_name),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout if enable_console else sys.stderr,
        level=level,
    )

    return structlog.get_logger(service_name)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)

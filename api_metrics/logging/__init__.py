"""
Structured logging utilities.
"""
from .setup import (
    setup_logging,
    get_logger,
    add_service_context,
)

__all__ = [
    'setup_logging',
    'get_logger',
    'add_service_context',
]

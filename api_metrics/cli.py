"""Command line entry point: ``api-metrics flush [--driver NAME]``."""
import argparse
import sys
from typing import Optional, Sequence

from .config import get_settings
from .drivers import create_storage_driver
from .exceptions import ApiMetricsError
from .logging import get_logger, setup_logging

logger = get_logger(__name__)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="api-metrics", description="Manage stored API metrics.")
    commands = parser.add_subparsers(dest="command", required=True)

    flush = commands.add_parser("flush", help="Delete all stored metrics.")
    flush.add_argument(
        "--driver",
        default=None,
        help="Storage driver to flush (memory, redis, null). Defaults to API_METRICS_DRIVER.",
    )
    return parser.parse_args(argv)


def flush(driver: Optional[str] = None) -> int:
    """Flush the configured driver; 0 on success, 1 on failure."""
    settings = get_settings()
    driver_name = driver or settings.driver
    try:
        storage = create_storage_driver(driver_name, settings)
    except ApiMetricsError as e:
        logger.error("Could not create storage driver", driver=driver_name, error=e.message)
        print(f"Failed to flush metrics: {e.message}", file=sys.stderr)
        return 1

    if storage.flush_metrics():
        print(f"Metrics flushed ({driver_name} driver).")
        return 0

    print("Failed to flush metrics.", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    setup_logging(log_format=settings.log_format)

    if args.command == "flush":
        return flush(args.driver)
    return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

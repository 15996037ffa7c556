"""Prometheus exporter over a collector or storage driver."""
from .exposition import CONTENT_TYPE
from .logging import get_logger


class PrometheusExporter:
    """
    Produces the exposition body for a scrape.

    ``source`` is anything with a ``get_metrics()`` method: a
    :class:`~api_metrics.core.MetricsCollector` or a storage driver.
    """

    content_type = CONTENT_TYPE

    def __init__(self, source, logger=None):
        self.source = source
        self.logger = logger or get_logger(__name__)

    def export(self) -> str:
        """Metrics in the Prometheus text exposition format."""
        try:
            return self.source.get_metrics()
        except Exception as e:
            self.logger.error(f"Failed to export metrics: {e}", error=str(e))
            return f"# Error exporting metrics: {e}\n"

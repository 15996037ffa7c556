"""
Starlette/FastAPI middleware for automatic request metrics.

``MetricsMiddleware`` times every request that is not excluded by the
collector and records the default API metrics through
:meth:`MetricsCollector.record_request`.
"""
import time
from typing import Callable, Optional

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .core import MetricsCollector
from .exporter import PrometheusExporter
from .logging import get_logger

logger = get_logger(__name__)

NO_CACHE = "no-cache, no-store, must-revalidate"


def normalize_endpoint(path: str) -> str:
    """Leading slash, no trailing slash, ``/`` for the root."""
    path = path.rstrip('/')
    if path and not path.startswith('/'):
        path = '/' + path
    return path or '/'


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app, metrics_collector: Optional[MetricsCollector] = None):
        super().__init__(app)
        self.metrics_collector = metrics_collector

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics."""
        collector = self.metrics_collector
        if collector is None or collector.should_exclude_path(request.url.path, request.method):
            return await call_next(request)

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            self._record(request, 500, time.time() - start_time, error_type=type(e).__name__)
            logger.error(
                f"Request failed: {type(e).__name__}",
                method=request.method,
                path=request.url.path,
                error=str(e)
            )
            raise

        self._record(request, response.status_code, time.time() - start_time)
        return response

    def _record(self, request: Request, status_code: int, duration: float, error_type: Optional[str] = None) -> None:
        try:
            self.metrics_collector.record_request(
                method=request.method,
                endpoint=normalize_endpoint(request.url.path),
                status_code=status_code,
                duration=duration,
                user_id=self._user_identifier(request),
                error_type=error_type,
            )
        except Exception as e:
            # Metrics collection must never break the request.
            logger.error(
                "Failed to collect metrics",
                error=str(e),
                path=request.url.path,
                method=request.method
            )

    def _user_identifier(self, request: Request) -> Optional[str]:
        """Authenticated identity, else ``ip:<client host>``."""
        user = request.scope.get("user")
        if user is not None and getattr(user, "is_authenticated", False):
            try:
                identity = user.identity
            except (AttributeError, NotImplementedError):
                # Starlette's SimpleUser only provides display_name.
                identity = getattr(user, "display_name", None)
            if identity:
                return str(identity)

        if request.client and request.client.host:
            return f"ip:{request.client.host}"
        return None


def setup_metrics_middleware(app: FastAPI, metrics_collector: MetricsCollector) -> None:
    """
    Setup metrics middleware for a FastAPI application.

    Args:
        app: FastAPI application instance
        metrics_collector: MetricsCollector instance; its settings decide
            which paths and methods are excluded
    """
    app.add_middleware(MetricsMiddleware, metrics_collector=metrics_collector)
    logger.info("HTTP metrics middleware enabled")


def create_metrics_endpoint(app: FastAPI, metrics_collector: MetricsCollector, path: Optional[str] = None) -> None:
    """Create the metrics endpoint for Prometheus scraping."""
    path = path or metrics_collector.settings.endpoint_path
    exporter = PrometheusExporter(metrics_collector)

    @app.get(path, include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=exporter.export(),
            media_type=exporter.content_type,
            headers={"Cache-Control": NO_CACHE}
        )

    logger.info(f"Metrics endpoint created at {path}")

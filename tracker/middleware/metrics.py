"""
Request metrics and access log for the tracker API.
"""
import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.routing import Match

from ..metrics import Metrics

log = structlog.get_logger()

# Shared label for every request no route accepts
UNMATCHED_ROUTE = "unmatched"


def route_template(request: Request) -> str:
    """Path template of the route serving this request, e.g. "/api/stats"."""
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return route.path
    return UNMATCHED_ROUTE


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Count and time every API request, labelled by route template.

    The Prometheus scrape endpoint itself is left out.
    """

    def __init__(self, app, metrics: Metrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        service = self.metrics.service_name
        route = route_template(request)
        active = self.metrics.http_requests_active.labels(service=service)
        active.inc()
        started = time.perf_counter()

        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        except Exception as e:
            log.error("http.request_error", route=route, error=str(e), error_type=type(e).__name__)
            raise
        finally:
            elapsed = time.perf_counter() - started
            active.dec()
            self.metrics.http_requests_total.labels(
                service=service, method=request.method, path=route, status=status
            ).inc()
            self.metrics.http_request_duration.labels(
                service=service, method=request.method, path=route
            ).observe(elapsed)
            log.info(
                "http.request",
                method=request.method,
                route=route,
                http_status=status,
                duration_ms=round(elapsed * 1000, 2),
            )

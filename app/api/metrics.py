"""
Request instrumentation and the /metrics scrape endpoint.
"""
import time
from typing import Callable

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import generate_prometheus_metrics, record_request

router = APIRouter(tags=["Metrics"])

UNINSTRUMENTED_PATHS = frozenset({"/metrics", "/health/live"})
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def route_label(request: Request) -> str:
    """The matched route template, so /api/conversations/{wa_id} stays one series."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests and their durations per method, route and status."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in UNINSTRUMENTED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        record_request(
            method=request.method,
            path=route_label(request),
            status_code=response.status_code,
            duration=time.perf_counter() - started,
        )
        return response


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Request, webhook, status-transition and realtime subscriber metrics.",
    response_class=Response,
)
async def metrics(request: Request) -> Response:
    return Response(
        content=generate_prometheus_metrics(request.app.version),
        media_type=PROMETHEUS_CONTENT_TYPE,
    )

"""
Prometheus instrumentation for the Dealer Transfers API.

This module exposes:
- HTTP request counters and latency histogram
- Notification dispatch counters per channel and outcome
- The /metrics endpoint handler
"""

from __future__ import annotations

import re
import time

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware


http_requests_total = Counter(
    "http_server_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notifications_dispatched_total = Counter(
    "notifications_dispatched_total",
    "Notification send attempts by channel and outcome",
    ["event", "channel", "status"],
)

notification_rules_skipped_total = Counter(
    "notification_rules_skipped_total",
    "Matching rules that produced no send attempt",
    ["event", "reason"],
)


def record_send_attempt(event: str, channel: str, status: str) -> None:
    notifications_dispatched_total.labels(event=event, channel=channel, status=status).inc()


def record_rule_skipped(event: str, reason: str) -> None:
    notification_rules_skipped_total.labels(event=event, reason=reason).inc()


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all requests."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request.url.path)
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            http_requests_total.labels(method=method, path=path, status=status_code).inc()
            http_request_duration_seconds.labels(method=method, path=path).observe(
                time.perf_counter() - start_time
            )

    def _normalize_path(self, path: str) -> str:
        """Replace numeric IDs in path with placeholder to reduce cardinality."""
        normalized = re.sub(r"/\d+", "/{id}", path)
        return "/".join(normalized.split("/")[:6])


async def metrics_endpoint(request: Request) -> Response:
    return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

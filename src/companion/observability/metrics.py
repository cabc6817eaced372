from __future__ import annotations

"""Prometheus metrics for the companion FastAPI backend.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for the upload and streaming paths.
"""

import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Gauge, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "companion_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

ACTIVE_CONNECTIONS = Gauge(
    "companion_active_connections",
    "Open WebSocket chat connections",
)

TURNS = Counter(
    "companion_turns_total",
    "Chat turns by outcome",
    labelnames=("outcome",),
)

FRAGMENTS_RELAYED = Counter(
    "companion_fragments_relayed_total",
    "Generated fragments forwarded to clients",
)

UPLOADS = Counter(
    "companion_uploads_total",
    "Document uploads by outcome",
    labelnames=("outcome",),
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths to their first segment."""
    if not path:
        return "/"
    segs = path.split("?")[0].split("/")
    if len(segs) > 1:
        return "/" + segs[1]
    return path


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(
            method=request.method,
            path=sanitize_path(request.url.path),
            status=str(response.status_code),
        ).observe(elapsed)
        return response

    return middleware

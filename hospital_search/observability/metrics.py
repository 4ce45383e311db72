"""Prometheus metrics for the hospital search service.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Embedding provider latency, failures and fallbacks
- Search latency and result counts per mode
- Indexing outcomes and embedding coverage
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from hospital_search.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding provider request duration in seconds",
    ["provider", "status"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding provider requests",
    ["provider", "status"],
)

EMBEDDING_FALLBACK_TOTAL = Counter(
    "embedding_fallbacks_total",
    "Times the fallback provider was substituted",
    ["primary", "fallback"],
)

# Search Metrics
SEARCH_DURATION = Histogram(
    "hospital_search_duration_seconds",
    "Hospital search duration in seconds",
    ["kind", "mode"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

SEARCH_RESULTS = Histogram(
    "hospital_search_results",
    "Results returned per search",
    ["kind", "mode"],
    buckets=[0, 1, 5, 10, 20, 50, 100],
)

# Indexing Metrics
INDEXING_HOSPITALS_TOTAL = Counter(
    "indexing_hospitals_total",
    "Hospitals processed by indexing runs",
    ["outcome"],
)

EMBEDDING_COVERAGE = Gauge(
    "hospital_embedding_coverage_percent",
    "Share of active hospitals with a stored embedding",
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        # /hospitals/{id}/similar carries an id
        parts = path.strip("/").split("/")
        if len(parts) == 3 and parts[0] == "hospitals" and parts[2] == "similar":
            return "/hospitals/{id}/similar"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    provider: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track one embedding provider call.

    Args:
        provider: Provider identity.
        duration: Request duration in seconds.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"
    EMBEDDING_REQUEST_DURATION.labels(provider=provider, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(provider=provider, status=status).inc()


def track_embedding_fallback(primary: str, fallback: str) -> None:
    """Count a fallback provider substitution."""
    EMBEDDING_FALLBACK_TOTAL.labels(primary=primary, fallback=fallback).inc()


def track_search_request(
    kind: str,
    duration: float,
    results: int,
    semantic: bool,
) -> None:
    """Track search metrics.

    Args:
        kind: "hospital" or "combined".
        duration: Search duration in seconds.
        results: Number of results returned.
        semantic: False when the search ran in degraded (text-only) mode.
    """
    mode = "semantic" if semantic else "degraded"
    SEARCH_DURATION.labels(kind=kind, mode=mode).observe(duration)
    SEARCH_RESULTS.labels(kind=kind, mode=mode).observe(results)


def track_indexing_outcome(successful: int, failed: int) -> None:
    """Count hospitals indexed or failed in a run."""
    if successful:
        INDEXING_HOSPITALS_TOTAL.labels(outcome="success").inc(successful)
    if failed:
        INDEXING_HOSPITALS_TOTAL.labels(outcome="failure").inc(failed)


def update_embedding_coverage(coverage: float) -> None:
    """Set the embedding coverage gauge (percent)."""
    EMBEDDING_COVERAGE.set(coverage)

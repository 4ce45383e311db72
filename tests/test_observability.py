"""Tests for observability module."""

import pytest
from httpx import AsyncClient
from prometheus_client import REGISTRY

from hospital_search.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    track_embedding_fallback,
    track_embedding_request,
    track_indexing_outcome,
    track_search_request,
    update_embedding_coverage,
)


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsEndpoint:
    """Tests for /metrics endpoint."""

    @pytest.mark.asyncio
    async def test_metrics_endpoint_returns_prometheus_format(self, client: AsyncClient) -> None:
        """Metrics endpoint returns Prometheus format."""
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert b"# HELP" in response.content


class TestMetricsFunctions:
    """Tests for metrics tracking functions."""

    def test_get_metrics_returns_bytes(self) -> None:
        """get_metrics returns bytes."""
        assert isinstance(get_metrics(), bytes)

    def test_track_embedding_request(self) -> None:
        """Successes and failures are counted per provider."""
        labels = {"provider": "gemini", "status": "error"}
        before = _sample("embedding_requests_total", labels)

        track_embedding_request("gemini", 0.2, success=False)

        assert _sample("embedding_requests_total", labels) == before + 1

    def test_track_embedding_fallback(self) -> None:
        labels = {"primary": "gemini", "fallback": "openai"}
        before = _sample("embedding_fallbacks_total", labels)

        track_embedding_fallback("gemini", "openai")

        assert _sample("embedding_fallbacks_total", labels) == before + 1

    def test_track_search_request_mode(self) -> None:
        """Degraded searches are labelled separately."""
        labels = {"kind": "hospital", "mode": "degraded"}
        before = _sample("hospital_search_duration_seconds_count", labels)

        track_search_request("hospital", 0.05, results=3, semantic=False)

        assert _sample("hospital_search_duration_seconds_count", labels) == before + 1

    def test_track_indexing_outcome(self) -> None:
        success = _sample("indexing_hospitals_total", {"outcome": "success"})
        failure = _sample("indexing_hospitals_total", {"outcome": "failure"})

        track_indexing_outcome(successful=4, failed=1)

        assert _sample("indexing_hospitals_total", {"outcome": "success"}) == success + 4
        assert _sample("indexing_hospitals_total", {"outcome": "failure"}) == failure + 1

    def test_update_embedding_coverage(self) -> None:
        update_embedding_coverage(62.5)
        assert _sample("hospital_embedding_coverage_percent") == 62.5


class TestMetricsMiddleware:
    """Tests for MetricsMiddleware."""

    @pytest.mark.asyncio
    async def test_middleware_records_request_metrics(self, client: AsyncClient) -> None:
        """Middleware records HTTP request metrics."""
        labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
        before = _sample("http_requests_total", labels)

        await client.get("/health/live")

        assert _sample("http_requests_total", labels) == before + 1

    def test_normalizes_endpoints(self) -> None:
        """Health checks and hospital ids collapse into one label each."""
        middleware = MetricsMiddleware(app=None)  # type: ignore[arg-type]

        assert middleware._normalize_endpoint("/health/ready") == "/health"
        assert (
            middleware._normalize_endpoint("/hospitals/6f1c0a50/similar")
            == "/hospitals/{id}/similar"
        )
        assert middleware._normalize_endpoint("/hospitals/search") == "/hospitals/search"

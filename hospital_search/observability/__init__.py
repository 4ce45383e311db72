"""Observability module for metrics and monitoring."""

from hospital_search.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    track_embedding_fallback,
    track_embedding_request,
    track_indexing_outcome,
    track_search_request,
    update_embedding_coverage,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "get_metrics_content_type",
    "track_embedding_fallback",
    "track_embedding_request",
    "track_indexing_outcome",
    "track_search_request",
    "update_embedding_coverage",
]

"""Embedding generation module."""

from hospital_search.embeddings.models import (
    BatchEmbeddingError,
    BatchEmbeddingResult,
    EmbeddingOptions,
    EmbeddingVector,
    TaskType,
)
from hospital_search.embeddings.composer import (
    compose_hospital_text,
    embedding_text_hash,
    is_embedding_stale,
    needs_reindex,
)
from hospital_search.embeddings.providers import (
    EmbeddingProviderClient,
    GeminiEmbeddingClient,
    OpenAIEmbeddingClient,
    coerce_dimensions,
)
from hospital_search.embeddings.service import EmbeddingService, validate_embedding_settings

__all__ = [
    "BatchEmbeddingError",
    "BatchEmbeddingResult",
    "EmbeddingOptions",
    "EmbeddingProviderClient",
    "EmbeddingService",
    "EmbeddingVector",
    "GeminiEmbeddingClient",
    "OpenAIEmbeddingClient",
    "TaskType",
    "coerce_dimensions",
    "compose_hospital_text",
    "embedding_text_hash",
    "is_embedding_stale",
    "needs_reindex",
    "validate_embedding_settings",
]

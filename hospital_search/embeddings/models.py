"""Embedding data models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from hospital_search.config import EmbeddingProvider


class TaskType(str, Enum):
    """How the embedded text will be used (Gemini task types)."""

    RETRIEVAL_DOCUMENT = "RETRIEVAL_DOCUMENT"
    RETRIEVAL_QUERY = "RETRIEVAL_QUERY"
    SEMANTIC_SIMILARITY = "SEMANTIC_SIMILARITY"


class EmbeddingVector(BaseModel):
    """A fixed-length vector with its provenance.

    Attributes:
        values: The embedding vector.
        provider: Provider that produced the vector.
        model: Provider model name.
        dimensions: Number of dimensions in the vector.
        generated_at: Generation time (UTC).
    """

    values: list[float] = Field(description="Embedding vector")
    provider: EmbeddingProvider = Field(description="Provider that produced the vector")
    model: str = Field(description="Model used for embedding")
    dimensions: int = Field(description="Vector dimensions")
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def model_post_init(self, __context: object) -> None:
        """Validate dimensions match vector length."""
        if self.dimensions != len(self.values):
            raise ValueError(
                f"dimensions ({self.dimensions}) does not match "
                f"embedding length ({len(self.values)})"
            )


class EmbeddingOptions(BaseModel):
    """Per-call provider selection.

    ``provider`` and ``fallback_provider`` default to the configured provider
    and its alternate.
    """

    provider: EmbeddingProvider | None = None
    dimensions: int | None = Field(default=None, ge=1)
    enable_fallback: bool | None = None
    fallback_provider: EmbeddingProvider | None = None
    task_type: TaskType = TaskType.RETRIEVAL_DOCUMENT


class BatchEmbeddingError(BaseModel):
    """A failed item of a batch, by input position."""

    index: int
    error: str


class BatchEmbeddingResult(BaseModel):
    """Batch output aligned with the input order.

    ``embeddings[i]`` is ``None`` exactly when an entry in ``errors`` has
    ``index == i``.
    """

    embeddings: list[EmbeddingVector | None] = Field(default_factory=list)
    errors: list[BatchEmbeddingError] = Field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for embedding in self.embeddings if embedding is not None)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def error_for(self, index: int) -> str | None:
        """Error message recorded for an input position, if any."""
        for entry in self.errors:
            if entry.index == index:
                return entry.error
        return None


class ConfigValidation(BaseModel):
    """Outcome of checking embedding provider configuration."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

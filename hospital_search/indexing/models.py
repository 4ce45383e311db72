"""Indexing run and coverage models."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from hospital_search.exceptions import IndexingError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IndexingOptions(_CamelModel):
    """How an indexing run selects and paces hospitals.

    Attributes:
        batch_size: Hospitals per batch (None uses settings).
        force_regenerate: Re-embed every active hospital.
        delay_between_batches: Seconds to wait between batches (None uses settings).
        include_stale: Also re-embed hospitals whose fields changed since
            their vector was generated.
    """

    batch_size: int | None = Field(default=None, ge=1, le=100)
    force_regenerate: bool = False
    delay_between_batches: float | None = Field(default=None, ge=0.0)
    include_stale: bool = False


class IndexingErrorEntry(_CamelModel):
    """One hospital that could not be indexed."""

    hospital_id: str
    hospital_name: str
    error: str


class IndexingProgress(_CamelModel):
    """Report of one indexing run.

    Mutated while batches complete; read-only once ``is_complete`` is set.
    """

    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    current_batch: int = 0
    total_batches: int = 0
    is_complete: bool = False
    is_cancelled: bool = False
    errors: list[IndexingErrorEntry] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    def _ensure_open(self) -> None:
        if self.is_complete:
            raise IndexingError(
                "Indexing progress is complete and can no longer change",
                details={"completed_at": str(self.completed_at)},
            )

    def start_batch(self, number: int) -> None:
        self._ensure_open()
        self.current_batch = number

    def record_success(self) -> None:
        self._ensure_open()
        self.processed += 1
        self.successful += 1

    def record_failure(self, hospital_id: str, hospital_name: str, error: str) -> None:
        self._ensure_open()
        self.processed += 1
        self.failed += 1
        self.errors.append(
            IndexingErrorEntry(hospital_id=hospital_id, hospital_name=hospital_name, error=error)
        )

    def complete(self, cancelled: bool = False) -> "IndexingProgress":
        """Seal the report."""
        self._ensure_open()
        self.is_cancelled = cancelled
        self.is_complete = True
        self.completed_at = datetime.now(UTC)
        return self


class EmbeddingStatus(_CamelModel):
    """Embedding coverage of active hospitals."""

    total: int
    with_embeddings: int
    without_embeddings: int
    coverage: float = Field(description="Percent of active hospitals with a vector (0-100)")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_counts(cls, total: int, with_embeddings: int) -> "EmbeddingStatus":
        coverage = round(with_embeddings / total * 100, 2) if total else 0.0
        return cls(
            total=total,
            with_embeddings=with_embeddings,
            without_embeddings=total - with_embeddings,
            coverage=coverage,
        )

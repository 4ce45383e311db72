"""Hospital embedding indexing."""

from hospital_search.indexing.engine import HospitalIndexer
from hospital_search.indexing.models import (
    EmbeddingStatus,
    IndexingErrorEntry,
    IndexingOptions,
    IndexingProgress,
)

__all__ = [
    "EmbeddingStatus",
    "HospitalIndexer",
    "IndexingErrorEntry",
    "IndexingOptions",
    "IndexingProgress",
]

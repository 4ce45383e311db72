"""Cross-entity search over hospitals and doctors."""

import time
from typing import Any

from hospital_search.config import SearchSettings, get_settings
from hospital_search.embeddings.service import EmbeddingService
from hospital_search.exceptions import ValidationError
from hospital_search.logging_config import get_logger
from hospital_search.observability.metrics import track_search_request
from hospital_search.search.engine import embed_query, validate_query
from hospital_search.search.lexical import cosine_similarity, domain_keywords_in
from hospital_search.search.models import (
    CombinedSearchMetadata,
    CombinedSearchResult,
    DoctorSummary,
    HospitalSummary,
)
from hospital_search.search.specialties import infer_specialties
from hospital_search.store.models import HospitalQuery, SearchFilters
from hospital_search.store.service import HospitalStore

logger = get_logger(__name__)

# Query words that ask for doctors even when no specialty was inferred.
DOCTOR_TRIGGERS = ("doctor", "specialist")


def wants_doctors(query: str, specialties: list[str]) -> bool:
    lowered = query.lower()
    return bool(specialties) or any(word in lowered for word in DOCTOR_TRIGGERS)


class CombinedSearchOrchestrator:
    """Fans one query out to hospitals and doctors.

    The two sub-searches fail independently: a failing one is logged, named
    in ``metadata.failed_searches`` and leaves its list empty.
    """

    def __init__(
        self,
        store: HospitalStore,
        embedding_service: EmbeddingService,
        settings: SearchSettings | None = None,
    ) -> None:
        self._store = store
        self._embedding_service = embedding_service
        self._settings = settings or get_settings().search

    def _bounded(self, value: int | None, default: int, name: str) -> int:
        if value is None:
            return default
        if value < 1:
            raise ValidationError(f"{name} must be positive", details={name: value})
        return min(value, self._settings.max_limit)

    async def _search_hospitals(
        self,
        query: str,
        location: str | None,
        limit: int,
        query_vector: list[float] | None,
    ) -> list[HospitalSummary]:
        hospital_query = HospitalQuery(
            filters=SearchFilters(city=location or None),
            match_any=[query.lower()],
            match_fields=("description",),
            limit=limit,
            with_vectors=query_vector is not None,
        )
        records = await self._store.search_hospitals(hospital_query)

        if not records:
            keywords = domain_keywords_in(query)
            if keywords:
                records = await self._store.search_hospitals(
                    hospital_query.model_copy(update={"match_any": [keywords[0]]})
                )

        summaries = []
        for record in records:
            similarity = 0.0
            if query_vector is not None and record.embedding:
                similarity = cosine_similarity(query_vector, record.embedding)
            summaries.append(HospitalSummary.from_record(record, similarity))
        return summaries

    async def combined_search(
        self,
        query: Any,
        location: str | None = None,
        hospital_limit: int | None = None,
        doctor_limit: int | None = None,
    ) -> CombinedSearchResult:
        """Search hospitals and, when relevant, doctors.

        Args:
            query: Free-text health concern.
            location: Optional city substring for hospitals.
            hospital_limit: Maximum hospitals (default 20).
            doctor_limit: Maximum doctors (default 15).

        Returns:
            CombinedSearchResult, possibly partial.

        Raises:
            ValidationError: If the query is missing or blank, or a limit is
                not positive.
        """
        query = validate_query(query)
        hospital_limit = self._bounded(
            hospital_limit, self._settings.hospital_limit, "hospitalLimit"
        )
        doctor_limit = self._bounded(doctor_limit, self._settings.doctor_limit, "doctorLimit")
        start = time.perf_counter()

        query_vector = await embed_query(self._embedding_service, query)
        specialties = infer_specialties(query)
        metadata = CombinedSearchMetadata(
            relevant_specialties=specialties,
            has_semantic_search=query_vector is not None,
        )

        hospitals: list[HospitalSummary] = []
        try:
            hospitals = await self._search_hospitals(query, location, hospital_limit, query_vector)
        except Exception as e:
            logger.warning(
                f"Hospital sub-search failed: {e}",
                exc_info=True,
                extra={"query_length": len(query)},
            )
            metadata.failed_searches.append("hospitals")

        doctors: list[DoctorSummary] = []
        if wants_doctors(query, specialties):
            try:
                records = await self._store.search_doctors(doctor_limit)
                doctors = [DoctorSummary.from_record(record) for record in records]
            except Exception as e:
                logger.warning(
                    f"Doctor sub-search failed: {e}",
                    exc_info=True,
                    extra={"query_length": len(query)},
                )
                metadata.failed_searches.append("doctors")

        metadata.hospital_count = len(hospitals)
        metadata.doctor_count = len(doctors)

        duration = time.perf_counter() - start
        track_search_request(
            "combined",
            duration,
            len(hospitals) + len(doctors),
            semantic=query_vector is not None,
        )
        logger.info(
            f"Combined search found {len(hospitals)} hospitals, {len(doctors)} doctors",
            extra={
                "specialties": len(specialties),
                "failed_searches": metadata.failed_searches,
                "duration_ms": round(duration * 1000, 2),
            },
        )

        return CombinedSearchResult(
            query=query,
            location=location,
            hospitals=hospitals,
            doctors=doctors,
            metadata=metadata,
        )

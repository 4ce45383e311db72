"""Hybrid semantic + lexical hospital search."""

import time
from typing import Any

from hospital_search.config import SearchSettings, get_settings
from hospital_search.embeddings.models import EmbeddingOptions, TaskType
from hospital_search.embeddings.service import EmbeddingService
from hospital_search.exceptions import (
    HospitalNotFoundError,
    HospitalSearchError,
    ValidationError,
)
from hospital_search.logging_config import get_logger
from hospital_search.observability.metrics import track_search_request
from hospital_search.search.lexical import broaden_query, cosine_similarity, text_score
from hospital_search.search.models import (
    ResolvedSearchOptions,
    SearchMetadata,
    SearchOptions,
    SearchResponse,
    SearchResult,
    SimilarHospital,
    SimilarHospitalsMetadata,
    SimilarHospitalsResponse,
    SimilarityStatistics,
)
from hospital_search.store.models import HospitalQuery, HospitalRecord, SearchFilters
from hospital_search.store.service import HospitalStore

logger = get_logger(__name__)

SIMILAR_DEFAULT_THRESHOLD = 0.75
SIMILAR_DEFAULT_LIMIT = 10
SIMILAR_MAX_LIMIT = 50


def validate_query(query: Any) -> str:
    """Return the stripped query or raise ValidationError.

    Raises:
        ValidationError: If the query is missing, not a string, or blank.
    """
    if not isinstance(query, str):
        raise ValidationError(
            "Query is required and must be a string",
            details={"query_type": type(query).__name__},
        )
    stripped = query.strip()
    if not stripped:
        raise ValidationError("Query must not be empty", details={"query": query})
    return stripped


async def embed_query(service: EmbeddingService, query: str) -> list[float] | None:
    """Embed a search query, or None when no provider could.

    Provider failures are logged and swallowed so callers can continue
    text-only.
    """
    try:
        vector = await service.generate_embedding(
            query,
            EmbeddingOptions(enable_fallback=True, task_type=TaskType.RETRIEVAL_QUERY),
        )
    except HospitalSearchError as e:
        logger.warning(
            f"Query embedding failed, falling back to text search: {e.message}",
            extra={"error_code": e.code.value},
        )
        return None

    logger.debug(
        f"Generated query embedding with {vector.provider.value}",
        extra={"provider": vector.provider.value, "dimensions": vector.dimensions},
    )
    return vector.values


class HybridSearchEngine:
    """Ranks hospitals by a blend of vector similarity and lexical relevance.

    Rows come from a lexical pass (whole-query substring, then a broadened
    token pass if that finds nothing) and a semantic pass over the same
    structured filters. The semantic pass only runs when a query embedding
    is available; otherwise the search is degraded to text-only.
    """

    def __init__(
        self,
        store: HospitalStore,
        embedding_service: EmbeddingService,
        settings: SearchSettings | None = None,
    ) -> None:
        """Initialize the search engine.

        Args:
            store: Hospital storage.
            embedding_service: Query embedding provider.
            settings: Ranking defaults. Uses defaults if not provided.
        """
        self._store = store
        self._embedding_service = embedding_service
        self._settings = settings or get_settings().search

    def resolve_options(self, options: SearchOptions | None = None) -> ResolvedSearchOptions:
        """Merge supplied options over the configured defaults."""
        options = options or SearchOptions()
        limit = options.limit if options.limit is not None else self._settings.default_limit
        return ResolvedSearchOptions(
            semantic_weight=(
                options.semantic_weight
                if options.semantic_weight is not None
                else self._settings.semantic_weight
            ),
            text_weight=(
                options.text_weight
                if options.text_weight is not None
                else self._settings.text_weight
            ),
            similarity_threshold=(
                options.similarity_threshold
                if options.similarity_threshold is not None
                else self._settings.similarity_threshold
            ),
            limit=min(limit, self._settings.max_limit),
        )

    async def _lexical_candidates(
        self,
        query: str,
        filters: SearchFilters,
        pool: int,
        with_vectors: bool,
    ) -> list[HospitalRecord]:
        lexical = HospitalQuery(
            filters=filters,
            match_any=[query.lower()],
            limit=pool,
            with_vectors=with_vectors,
        )
        records = await self._store.search_hospitals(lexical)
        if records:
            return records

        terms = broaden_query(query)
        if not terms:
            return []
        logger.debug(
            "Literal match found nothing, retrying with broadened terms",
            extra={"terms": terms},
        )
        return await self._store.search_hospitals(
            lexical.model_copy(update={"match_any": terms})
        )

    async def search(
        self,
        query: Any,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResponse:
        """Search hospitals.

        Args:
            query: Free-text query.
            filters: Structured constraints, AND-ed.
            options: Ranking knobs merged over the defaults.

        Returns:
            SearchResponse ordered by combined score, then rating.

        Raises:
            ValidationError: If the query is missing or blank.
            DatabaseError: If the store cannot be queried.
        """
        query = validate_query(query)
        start = time.perf_counter()
        filters = filters or SearchFilters()
        resolved = self.resolve_options(options)

        query_vector = await embed_query(self._embedding_service, query)
        pool = max(resolved.limit, self._settings.max_limit)

        candidates: dict[str, HospitalRecord] = {
            record.id: record
            for record in await self._lexical_candidates(
                query, filters, pool, with_vectors=query_vector is not None
            )
        }

        semantic_scores: dict[str, float] = {}
        if query_vector is not None:
            hits = await self._store.similarity_search(
                query_vector,
                HospitalQuery(filters=filters, limit=pool),
                score_threshold=resolved.similarity_threshold,
            )
            for hit in hits:
                semantic_scores[hit.hospital.id] = max(0.0, min(1.0, hit.similarity))
                candidates.setdefault(hit.hospital.id, hit.hospital)

        results: list[SearchResult] = []
        for record in candidates.values():
            if record.id in semantic_scores:
                similarity = semantic_scores[record.id]
            elif query_vector is not None and record.embedding:
                similarity = cosine_similarity(query_vector, record.embedding)
            else:
                similarity = 0.0
            lexical = text_score(query, record)
            combined = resolved.semantic_weight * similarity + resolved.text_weight * lexical
            results.append(SearchResult.from_record(record, similarity, lexical, combined))

        results.sort(key=lambda r: (r.combined_score, r.rating), reverse=True)
        results = results[: resolved.limit]

        duration = time.perf_counter() - start
        track_search_request("hospital", duration, len(results), semantic=query_vector is not None)
        logger.info(
            f"Found {len(results)} hospitals for query",
            extra={
                "query_length": len(query),
                "results_count": len(results),
                "has_semantic_search": query_vector is not None,
                "duration_ms": round(duration * 1000, 2),
            },
        )

        return SearchResponse(
            results=results,
            metadata=SearchMetadata(
                query=query,
                total_results=len(results),
                has_semantic_search=query_vector is not None,
                search_options=resolved,
                filters=filters,
            ),
        )

    async def find_similar_hospitals(
        self,
        hospital_id: str,
        threshold: float = SIMILAR_DEFAULT_THRESHOLD,
        limit: int = SIMILAR_DEFAULT_LIMIT,
    ) -> SimilarHospitalsResponse:
        """Active hospitals closest to another hospital's stored vector.

        Raises:
            ValidationError: If threshold is outside 0-1 or limit outside 1-50.
            HospitalNotFoundError: If the hospital does not exist.
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(
                "Similarity threshold must be between 0 and 1",
                details={"threshold": threshold},
            )
        if not 1 <= limit <= SIMILAR_MAX_LIMIT:
            raise ValidationError(
                f"Limit must be between 1 and {SIMILAR_MAX_LIMIT}",
                details={"limit": limit},
            )

        target = await self._store.get_hospital(hospital_id, with_vector=True)
        if target is None:
            raise HospitalNotFoundError(hospital_id)

        if not target.embedding:
            return SimilarHospitalsResponse(
                message="Target hospital does not have an embedding yet. Run indexing first.",
                metadata=SimilarHospitalsMetadata(
                    target_hospital_id=target.id,
                    target_hospital_name=target.name,
                    has_embedding=False,
                    similarity_threshold=threshold,
                    limit=limit,
                ),
            )

        hits = await self._store.similarity_search(
            target.embedding,
            HospitalQuery(verified_only=False, limit=limit),
            score_threshold=threshold,
            exclude_ids=[target.id],
        )
        similar = [
            SimilarHospital(
                id=hit.hospital.id,
                name=hit.hospital.name,
                city=hit.hospital.city,
                state=hit.hospital.state,
                type=hit.hospital.type,
                rating=hit.hospital.rating,
                similarity_score=hit.similarity,
            )
            for hit in hits
        ]

        logger.info(
            f"Found {len(similar)} hospitals similar to {target.name}",
            extra={"hospital_id": target.id, "threshold": threshold},
        )

        return SimilarHospitalsResponse(
            similar_hospitals=similar,
            metadata=SimilarHospitalsMetadata(
                target_hospital_id=target.id,
                target_hospital_name=target.name,
                has_embedding=True,
                total_results=len(similar),
                similarity_threshold=threshold,
                limit=limit,
                statistics=SimilarityStatistics.from_scores(
                    [s.similarity_score for s in similar]
                ),
            ),
        )

"""Hospital store interface and Qdrant implementation."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Direction,
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    HasIdCondition,
    MatchText,
    MatchValue,
    OrderBy,
    PayloadSchemaType,
    PointStruct,
    PointVectors,
    VectorParams,
)

from hospital_search.config import QdrantSettings, get_settings
from hospital_search.embeddings.models import EmbeddingVector
from hospital_search.exceptions import DatabaseError, ValidationError
from hospital_search.logging_config import get_logger
from hospital_search.store.models import (
    DoctorRecord,
    HospitalQuery,
    HospitalRecord,
    ScoredHospital,
)

logger = get_logger(__name__)

VECTOR_NAME = "embedding"

# Text fields mirrored lower-cased so substring conditions ignore case.
_LOWERCASE_FIELDS = ("name", "description", "city", "state")

# Payload keys owned by the indexer; plain field updates never touch them.
_EMBEDDING_KEYS = (
    "has_embedding",
    "embedding_text_hash",
    "embedding_provider",
    "embedding_model",
    "embedding_dimensions",
    "embedding_generated_at",
)

_SCROLL_PAGE = 256

# Range indexes backing the ordered, bounded selections.
_HOSPITAL_ORDER_KEY = "rating"
_DOCTOR_ORDER_KEY = "years_of_experience"


def _point_id(value: str) -> str:
    """Normalise a record id to the UUID form Qdrant accepts."""
    try:
        return str(UUID(str(value)))
    except ValueError as e:
        raise ValidationError(
            f"Invalid record id: {value}",
            details={"id": str(value)},
        ) from e


def _match(key: str, value: Any) -> FieldCondition:
    return FieldCondition(key=key, match=MatchValue(value=value))


def _contains(field: str, text: str) -> FieldCondition:
    # MatchText on a field without a full-text index is a substring match.
    return FieldCondition(key=f"{field}_lc", match=MatchText(text=text.lower()))


def _hospital_payload(record: HospitalRecord) -> dict[str, Any]:
    payload = record.model_dump(mode="json", exclude={"embedding"})
    for field in _LOWERCASE_FIELDS:
        value = payload.get(field)
        payload[f"{field}_lc"] = value.lower() if isinstance(value, str) else ""
    return payload


def _hospital_from_point(point: Any) -> HospitalRecord:
    payload = dict(point.payload or {})
    payload["id"] = str(point.id)
    vector = point.vector if isinstance(point.vector, dict) else None
    if vector and vector.get(VECTOR_NAME):
        payload["embedding"] = list(vector[VECTOR_NAME])
    return HospitalRecord.model_validate(payload)


class HospitalStore(ABC):
    """Abstract base class for hospital storage.

    Exposes the record storage, structured filtering, substring matching and
    vector similarity the search and indexing layers rely on.
    """

    @abstractmethod
    async def ensure_collections(self) -> None:
        """Create backing collections when missing."""
        ...

    @abstractmethod
    async def upsert_hospitals(self, records: Sequence[HospitalRecord]) -> int:
        """Insert or replace hospitals (including any vector they carry)."""
        ...

    @abstractmethod
    async def update_hospital(self, record: HospitalRecord) -> None:
        """Update a hospital's fields, leaving its stored vector untouched."""
        ...

    @abstractmethod
    async def get_hospital(
        self,
        hospital_id: str,
        with_vector: bool = False,
    ) -> HospitalRecord | None:
        """Fetch one hospital by id, or None if it does not exist."""
        ...

    @abstractmethod
    async def list_indexing_candidates(
        self,
        missing_only: bool = True,
        hospital_ids: Sequence[str] | None = None,
    ) -> list[HospitalRecord]:
        """Active hospitals eligible for (re)embedding.

        Args:
            missing_only: Only hospitals without a stored vector.
            hospital_ids: Restrict to these ids.
        """
        ...

    @abstractmethod
    async def search_hospitals(self, query: HospitalQuery) -> list[HospitalRecord]:
        """Filtered selection, highest rating first, bounded by ``query.limit``."""
        ...

    @abstractmethod
    async def similarity_search(
        self,
        vector: list[float],
        query: HospitalQuery,
        score_threshold: float | None = None,
        exclude_ids: Sequence[str] = (),
    ) -> list[ScoredHospital]:
        """Nearest hospitals to ``vector`` among rows matching ``query``."""
        ...

    @abstractmethod
    async def update_embedding(
        self,
        hospital_id: str,
        vector: EmbeddingVector,
        text_hash: str,
    ) -> None:
        """Store a hospital's vector with its provenance."""
        ...

    @abstractmethod
    async def clear_embeddings(self) -> int:
        """Remove every stored hospital vector; returns how many were set."""
        ...

    @abstractmethod
    async def count_hospitals(self, with_embedding: bool | None = None) -> int:
        """Count active hospitals, optionally by embedding presence."""
        ...

    @abstractmethod
    async def upsert_doctors(self, records: Sequence[DoctorRecord]) -> int:
        """Insert or replace doctors."""
        ...

    @abstractmethod
    async def search_doctors(self, limit: int) -> list[DoctorRecord]:
        """Active, verified doctors accepting new patients, most experienced first."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Check the backing database is reachable."""
        ...

    async def close(self) -> None:
        """Release any client resources."""
        return None


class QdrantHospitalStore(HospitalStore):
    """Hospital store backed by Qdrant collections.

    Each record is a point whose payload holds the record fields; hospitals
    carry an optional named ``embedding`` vector.
    """

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
        dimensions: int | None = None,
    ) -> None:
        """Initialize Qdrant hospital store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
            dimensions: Vector dimensionality (defaults to embedding settings).
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None
        self._dimensions = dimensions or get_settings().embedding.dimensions

    @property
    def hospitals_collection(self) -> str:
        return self._settings.hospitals_collection

    @property
    def doctors_collection(self) -> str:
        return self._settings.doctors_collection

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    def _hospital_filter(self, query: HospitalQuery) -> Filter:
        filters = query.filters
        must: list[Any] = [_match("is_active", True)]

        verified = filters.is_verified
        if verified is None and query.verified_only:
            verified = True
        if verified is not None:
            must.append(_match("is_verified", verified))

        if filters.city:
            must.append(_contains("city", filters.city))
        if filters.state:
            must.append(_contains("state", filters.state))
        if filters.type is not None:
            must.append(_match("type", filters.type.value))
        if filters.emergency_services is not None:
            must.append(_match("emergency_services", filters.emergency_services))
        if filters.trauma_level:
            must.append(_match("trauma_level", filters.trauma_level))

        should = [
            _contains(field, term)
            for term in query.match_any
            if term
            for field in query.match_fields
        ]
        return Filter(must=must, should=should or None)

    async def _scroll_all(
        self,
        collection: str,
        scroll_filter: Filter,
        with_vectors: bool,
    ) -> list[Any]:
        client = await self._get_client()
        points: list[Any] = []
        offset = None
        while True:
            batch, offset = await client.scroll(
                collection_name=collection,
                scroll_filter=scroll_filter,
                limit=_SCROLL_PAGE,
                offset=offset,
                with_payload=True,
                with_vectors=[VECTOR_NAME] if with_vectors else False,
            )
            points.extend(batch)
            if offset is None:
                return points

    async def ensure_collections(self) -> None:
        """Create the hospital and doctor collections if missing."""
        client = await self._get_client()
        order_indexes = (
            (self.hospitals_collection, _HOSPITAL_ORDER_KEY, PayloadSchemaType.FLOAT),
            (self.doctors_collection, _DOCTOR_ORDER_KEY, PayloadSchemaType.INTEGER),
        )

        try:
            for name, order_key, order_schema in order_indexes:
                if await client.collection_exists(name):
                    continue
                await client.create_collection(
                    collection_name=name,
                    vectors_config={
                        VECTOR_NAME: VectorParams(
                            size=self._dimensions,
                            distance=Distance.COSINE,
                        )
                    },
                )
                await client.create_payload_index(
                    collection_name=name,
                    field_name=order_key,
                    field_schema=order_schema,
                )
                logger.info(f"Created collection: {name}", extra={"dimensions": self._dimensions})
        except Exception as e:
            raise DatabaseError(
                f"Failed to create collections: {e}",
                details={"error": str(e)},
            ) from e

    async def upsert_hospitals(self, records: Sequence[HospitalRecord]) -> int:
        """Insert or replace hospital points."""
        if not records:
            return 0

        points = []
        for record in records:
            payload = _hospital_payload(record)
            payload["has_embedding"] = record.embedding is not None
            vector = {VECTOR_NAME: record.embedding} if record.embedding is not None else {}
            points.append(PointStruct(id=_point_id(record.id), vector=vector, payload=payload))

        client = await self._get_client()
        try:
            await client.upsert(collection_name=self.hospitals_collection, points=points)
        except Exception as e:
            raise DatabaseError(
                f"Failed to upsert hospitals: {e}",
                details={"collection": self.hospitals_collection, "error": str(e)},
            ) from e

        logger.debug(
            f"Upserted {len(points)} hospitals",
            extra={"collection": self.hospitals_collection},
        )
        return len(points)

    async def update_hospital(self, record: HospitalRecord) -> None:
        """Overwrite a hospital's fields via payload update."""
        payload = _hospital_payload(record)
        for key in _EMBEDDING_KEYS:
            payload.pop(key, None)
        payload["updated_at"] = datetime.now(UTC).isoformat()

        client = await self._get_client()
        try:
            await client.set_payload(
                collection_name=self.hospitals_collection,
                payload=payload,
                points=[_point_id(record.id)],
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to update hospital {record.id}: {e}",
                details={"hospital_id": record.id, "error": str(e)},
            ) from e

    async def get_hospital(
        self,
        hospital_id: str,
        with_vector: bool = False,
    ) -> HospitalRecord | None:
        client = await self._get_client()
        try:
            points = await client.retrieve(
                collection_name=self.hospitals_collection,
                ids=[_point_id(hospital_id)],
                with_payload=True,
                with_vectors=[VECTOR_NAME] if with_vector else False,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to fetch hospital {hospital_id}: {e}",
                details={"hospital_id": hospital_id, "error": str(e)},
            ) from e

        if not points:
            return None
        return _hospital_from_point(points[0])

    async def list_indexing_candidates(
        self,
        missing_only: bool = True,
        hospital_ids: Sequence[str] | None = None,
    ) -> list[HospitalRecord]:
        must: list[Any] = [_match("is_active", True)]
        if missing_only:
            must.append(_match("has_embedding", False))
        if hospital_ids is not None:
            must.append(HasIdCondition(has_id=[_point_id(i) for i in hospital_ids]))

        try:
            points = await self._scroll_all(
                self.hospitals_collection,
                Filter(must=must),
                with_vectors=False,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to fetch hospitals: {e}",
                details={"error": str(e)},
            ) from e

        return [_hospital_from_point(point) for point in points]

    async def search_hospitals(self, query: HospitalQuery) -> list[HospitalRecord]:
        client = await self._get_client()
        try:
            points, _ = await client.scroll(
                collection_name=self.hospitals_collection,
                scroll_filter=self._hospital_filter(query),
                limit=query.limit,
                order_by=OrderBy(key=_HOSPITAL_ORDER_KEY, direction=Direction.DESC),
                with_payload=True,
                with_vectors=[VECTOR_NAME] if query.with_vectors else False,
            )
        except Exception as e:
            raise DatabaseError(
                f"Hospital search failed: {e}",
                details={"error": str(e)},
            ) from e

        return [_hospital_from_point(point) for point in points]

    async def similarity_search(
        self,
        vector: list[float],
        query: HospitalQuery,
        score_threshold: float | None = None,
        exclude_ids: Sequence[str] = (),
    ) -> list[ScoredHospital]:
        query_filter = self._hospital_filter(query)
        if exclude_ids:
            query_filter.must_not = [HasIdCondition(has_id=[_point_id(i) for i in exclude_ids])]

        client = await self._get_client()
        try:
            response = await client.query_points(
                collection_name=self.hospitals_collection,
                query=vector,
                using=VECTOR_NAME,
                query_filter=query_filter,
                limit=query.limit,
                score_threshold=score_threshold,
                with_payload=True,
                with_vectors=query.with_vectors,
            )
        except Exception as e:
            raise DatabaseError(
                f"Similarity search failed: {e}",
                details={"error": str(e)},
            ) from e

        return [
            ScoredHospital(
                hospital=_hospital_from_point(point),
                similarity=point.score if point.score is not None else 0.0,
            )
            for point in response.points
        ]

    async def update_embedding(
        self,
        hospital_id: str,
        vector: EmbeddingVector,
        text_hash: str,
    ) -> None:
        point_id = _point_id(hospital_id)
        client = await self._get_client()
        try:
            await client.update_vectors(
                collection_name=self.hospitals_collection,
                points=[PointVectors(id=point_id, vector={VECTOR_NAME: vector.values})],
            )
        except Exception as e:
            raise DatabaseError(
                f"Database update failed for hospital {hospital_id}: {e}",
                details={"hospital_id": hospital_id, "error": str(e)},
            ) from e

        try:
            await client.set_payload(
                collection_name=self.hospitals_collection,
                payload={
                    "has_embedding": True,
                    "embedding_text_hash": text_hash,
                    "embedding_provider": vector.provider.value,
                    "embedding_model": vector.model,
                    "embedding_dimensions": vector.dimensions,
                    "embedding_generated_at": vector.generated_at.isoformat(),
                    "updated_at": datetime.now(UTC).isoformat(),
                },
                points=[point_id],
            )
        except Exception as e:
            # A stored vector always carries its provenance payload.
            await self._drop_vector(client, hospital_id, point_id)
            raise DatabaseError(
                f"Database update failed for hospital {hospital_id}: {e}",
                details={"hospital_id": hospital_id, "error": str(e)},
            ) from e

    async def _drop_vector(
        self,
        client: AsyncQdrantClient,
        hospital_id: str,
        point_id: str,
    ) -> None:
        """Remove one hospital vector after a failed embedding update.

        The row is marked as unembedded so the next indexing run picks it up.
        """
        try:
            await client.delete_vectors(
                collection_name=self.hospitals_collection,
                vectors=[VECTOR_NAME],
                points=[point_id],
            )
            await client.set_payload(
                collection_name=self.hospitals_collection,
                payload={"has_embedding": False, "embedding_text_hash": None},
                points=[point_id],
            )
        except Exception as e:
            logger.error(
                f"Failed to remove vector for hospital {hospital_id}: {e}",
                extra={"hospital_id": hospital_id},
            )

    async def clear_embeddings(self) -> int:
        client = await self._get_client()
        everything = FilterSelector(filter=Filter())
        try:
            cleared = await client.count(
                collection_name=self.hospitals_collection,
                count_filter=Filter(must=[_match("has_embedding", True)]),
                exact=True,
            )
            await client.delete_vectors(
                collection_name=self.hospitals_collection,
                vectors=[VECTOR_NAME],
                points=everything,
            )
            await client.set_payload(
                collection_name=self.hospitals_collection,
                payload={
                    **{key: None for key in _EMBEDDING_KEYS},
                    "has_embedding": False,
                    "updated_at": datetime.now(UTC).isoformat(),
                },
                points=everything,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to reset embeddings: {e}",
                details={"error": str(e)},
            ) from e

        logger.info(f"Cleared {cleared.count} hospital embeddings")
        return cleared.count

    async def count_hospitals(self, with_embedding: bool | None = None) -> int:
        must: list[Any] = [_match("is_active", True)]
        if with_embedding is not None:
            must.append(_match("has_embedding", with_embedding))

        client = await self._get_client()
        try:
            result = await client.count(
                collection_name=self.hospitals_collection,
                count_filter=Filter(must=must),
                exact=True,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to count hospitals: {e}",
                details={"error": str(e)},
            ) from e
        return result.count

    async def upsert_doctors(self, records: Sequence[DoctorRecord]) -> int:
        if not records:
            return 0

        points = [
            PointStruct(
                id=_point_id(record.id),
                vector={},
                payload=record.model_dump(mode="json"),
            )
            for record in records
        ]
        client = await self._get_client()
        try:
            await client.upsert(collection_name=self.doctors_collection, points=points)
        except Exception as e:
            raise DatabaseError(
                f"Failed to upsert doctors: {e}",
                details={"collection": self.doctors_collection, "error": str(e)},
            ) from e
        return len(points)

    async def search_doctors(self, limit: int) -> list[DoctorRecord]:
        doctor_filter = Filter(
            must=[
                _match("is_active", True),
                _match("is_verified", True),
                _match("is_accepting_new_patients", True),
            ]
        )
        client = await self._get_client()
        try:
            points, _ = await client.scroll(
                collection_name=self.doctors_collection,
                scroll_filter=doctor_filter,
                limit=limit,
                order_by=OrderBy(key=_DOCTOR_ORDER_KEY, direction=Direction.DESC),
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            raise DatabaseError(
                f"Doctor search failed: {e}",
                details={"error": str(e)},
            ) from e

        return [
            DoctorRecord.model_validate({**(point.payload or {}), "id": str(point.id)})
            for point in points
        ]

    async def ping(self) -> bool:
        client = await self._get_client()
        try:
            await client.get_collections()
        except Exception as e:
            logger.warning(f"Qdrant ping failed: {e}")
            return False
        return True

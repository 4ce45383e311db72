"""Search request and response models."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from hospital_search.store.models import (
    DoctorRecord,
    HospitalRecord,
    HospitalType,
    SearchFilters,
)

# Hospital fields exposed by search results.
_PROJECTED_FIELDS = {
    "id",
    "name",
    "slug",
    "description",
    "type",
    "city",
    "state",
    "trauma_level",
    "emergency_services",
    "is_active",
    "is_verified",
    "is_featured",
    "rating",
    "review_count",
    "address",
    "phone",
    "website",
}


def _now() -> datetime:
    return datetime.now(UTC)


class SearchOptions(BaseModel):
    """Ranking knobs; unset fields take the configured defaults."""

    semantic_weight: float | None = Field(default=None, ge=0.0, description="Weight of similarity")
    text_weight: float | None = Field(default=None, ge=0.0, description="Weight of text score")
    similarity_threshold: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for rows found only semantically",
    )
    limit: int | None = Field(default=None, ge=1, le=100, description="Maximum results")


class ResolvedSearchOptions(SearchOptions):
    """Search options with every default filled in."""

    semantic_weight: float = Field(ge=0.0)
    text_weight: float = Field(ge=0.0)
    similarity_threshold: float = Field(ge=0.0, le=1.0)
    limit: int = Field(ge=1)


class SearchResult(BaseModel):
    """A hospital projection with its three scores.

    Attributes:
        similarity_score: Cosine similarity to the query (0 when degraded).
        text_score: Lexical relevance (0-1).
        combined_score: Weighted blend used for ranking.
    """

    id: str
    name: str
    slug: str | None = None
    description: str | None = None
    type: HospitalType | None = None
    city: str | None = None
    state: str | None = None
    trauma_level: str | None = None
    emergency_services: bool = False
    is_active: bool = True
    is_verified: bool = False
    is_featured: bool = False
    rating: float = 0.0
    review_count: int = 0
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    similarity_score: float = Field(description="Semantic similarity (0-1)")
    text_score: float = Field(description="Lexical relevance (0-1)")
    combined_score: float = Field(description="Ranking key")

    @classmethod
    def from_record(
        cls,
        record: HospitalRecord,
        similarity_score: float,
        text_score: float,
        combined_score: float,
    ) -> "SearchResult":
        return cls(
            **record.model_dump(include=_PROJECTED_FIELDS),
            similarity_score=similarity_score,
            text_score=text_score,
            combined_score=combined_score,
        )


class SearchMetadata(BaseModel):
    """Analytics echoed with every search response."""

    query: str
    total_results: int
    has_semantic_search: bool = Field(description="False when the search ran text-only")
    search_options: SearchOptions
    filters: SearchFilters
    timestamp: datetime = Field(default_factory=_now)


class SearchResponse(BaseModel):
    """Ranked hospital search results."""

    results: list[SearchResult] = Field(default_factory=list)
    metadata: SearchMetadata


class SimilarHospital(BaseModel):
    """A hospital near another in embedding space."""

    id: str
    name: str
    city: str | None = None
    state: str | None = None
    type: HospitalType | None = None
    rating: float = 0.0
    similarity_score: float


class SimilarityStatistics(BaseModel):
    """Similarity spread, rounded to three decimals."""

    avg_similarity: float = 0.0
    max_similarity: float = 0.0
    min_similarity: float = 0.0

    @classmethod
    def from_scores(cls, scores: list[float]) -> "SimilarityStatistics":
        if not scores:
            return cls()
        return cls(
            avg_similarity=round(sum(scores) / len(scores), 3),
            max_similarity=round(max(scores), 3),
            min_similarity=round(min(scores), 3),
        )


class SimilarHospitalsMetadata(BaseModel):
    target_hospital_id: str
    target_hospital_name: str
    has_embedding: bool
    total_results: int = 0
    similarity_threshold: float
    limit: int
    statistics: SimilarityStatistics = Field(default_factory=SimilarityStatistics)
    timestamp: datetime = Field(default_factory=_now)


class SimilarHospitalsResponse(BaseModel):
    """Hospitals similar to a target hospital."""

    message: str | None = None
    similar_hospitals: list[SimilarHospital] = Field(default_factory=list)
    metadata: SimilarHospitalsMetadata


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HospitalSummary(_CamelModel):
    """Hospital as shown in combined search results."""

    id: str
    name: str
    type: HospitalType | None = None
    city: str | None = None
    state: str | None = None
    rating: float = 0.0
    review_count: int = 0
    emergency_services: bool = False
    trauma_level: str | None = None
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    similarity: float = Field(default=0.0, description="Cosine similarity to the query")

    @classmethod
    def from_record(cls, record: HospitalRecord, similarity: float = 0.0) -> "HospitalSummary":
        return cls(
            id=record.id,
            name=record.name,
            type=record.type,
            city=record.city,
            state=record.state,
            rating=record.rating,
            review_count=record.review_count,
            emergency_services=record.emergency_services,
            trauma_level=record.trauma_level,
            address=record.address,
            phone=record.phone,
            website=record.website,
            similarity=similarity,
        )


class SpecialtySummary(_CamelModel):
    name: str
    category: str | None = None
    is_primary: bool = False
    board_certified: bool = False
    years_in_specialty: int | None = None


class AffiliationSummary(_CamelModel):
    id: str
    name: str
    city: str | None = None
    is_primary: bool = False
    position_title: str | None = None
    department: str | None = None


class DoctorSummary(_CamelModel):
    """Doctor with flattened specialties and hospital affiliations."""

    id: str
    first_name: str
    last_name: str
    title: str | None = None
    profile_image: str | None = None
    years_of_experience: int = 0
    consultation_fee: float | None = None
    accepting_new_patients: bool = False
    telehealth: bool = False
    specialties: list[SpecialtySummary] = Field(default_factory=list)
    hospitals: list[AffiliationSummary] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: DoctorRecord) -> "DoctorSummary":
        return cls(
            id=record.id,
            first_name=record.first_name,
            last_name=record.last_name,
            title=record.title,
            profile_image=record.profile_image,
            years_of_experience=record.years_of_experience,
            consultation_fee=record.consultation_fee,
            accepting_new_patients=record.is_accepting_new_patients,
            telehealth=record.is_telehealth_available,
            specialties=[
                SpecialtySummary(
                    name=s.name,
                    category=s.category,
                    is_primary=s.is_primary,
                    board_certified=s.board_certified,
                    years_in_specialty=s.years_in_specialty,
                )
                for s in record.specialties
            ],
            hospitals=[
                AffiliationSummary(
                    id=h.hospital_id,
                    name=h.name,
                    city=h.city,
                    is_primary=h.is_primary,
                    position_title=h.position_title,
                    department=h.department,
                )
                for h in record.hospitals
            ],
        )


class CombinedSearchMetadata(_CamelModel):
    """Counts and inferred specialties for a combined search.

    Attributes:
        failed_searches: Sub-searches ("hospitals", "doctors") that raised.
    """

    hospital_count: int = 0
    doctor_count: int = 0
    relevant_specialties: list[str] = Field(default_factory=list)
    search_performed: bool = True
    has_semantic_search: bool = False
    failed_searches: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)


class CombinedSearchResult(_CamelModel):
    """Hospitals and doctors for one query."""

    query: str
    location: str | None = None
    hospitals: list[HospitalSummary] = Field(default_factory=list)
    doctors: list[DoctorSummary] = Field(default_factory=list)
    metadata: CombinedSearchMetadata = Field(default_factory=CombinedSearchMetadata)

    def to_response(self) -> dict[str, Any]:
        """Wire form with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

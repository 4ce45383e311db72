"""API routes for hospital and combined search."""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

from hospital_search.api.dependencies import get_combined_search, get_search_engine
from hospital_search.exceptions import ValidationError
from hospital_search.search.combined import CombinedSearchOrchestrator
from hospital_search.search.engine import HybridSearchEngine
from hospital_search.search.models import (
    CombinedSearchResult,
    SearchOptions,
    SearchResponse,
    SimilarHospitalsResponse,
)
from hospital_search.store.models import HospitalType, SearchFilters

# Create router
router = APIRouter(tags=["Search"])


class SearchRequest(BaseModel):
    """Request body for hospital search."""

    query: StrictStr | None = Field(default=None, description="Free-text query")
    filters: SearchFilters = Field(
        default_factory=SearchFilters,
        description="Structured constraints",
    )
    options: SearchOptions = Field(
        default_factory=SearchOptions,
        description="Ranking knobs",
    )


class CombinedSearchLimits(BaseModel):
    """Per-entity result bounds for combined search."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    hospital_limit: int | None = Field(default=None, ge=1, le=100)
    doctor_limit: int | None = Field(default=None, ge=1, le=100)


class CombinedSearchRequest(BaseModel):
    """Request body for combined search."""

    query: StrictStr | None = Field(default=None, description="Health concern or free text")
    location: StrictStr | None = Field(default=None, description="City substring")
    filters: CombinedSearchLimits = Field(default_factory=CombinedSearchLimits)


@router.post("/hospitals/search", response_model=SearchResponse)
async def search_hospitals(
    request: SearchRequest,
    engine: HybridSearchEngine = Depends(get_search_engine),
) -> SearchResponse:
    """Hybrid semantic + lexical hospital search."""
    return await engine.search(request.query, request.filters, request.options)


@router.get("/hospitals/search", response_model=SearchResponse)
async def search_hospitals_get(
    q: str | None = Query(default=None, description="Free-text query"),
    query: str | None = Query(default=None, description="Alias of q"),
    city: str | None = None,
    state: str | None = None,
    type: HospitalType | None = None,
    emergency_services: bool | None = None,
    is_verified: bool | None = None,
    trauma_level: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=100),
    engine: HybridSearchEngine = Depends(get_search_engine),
) -> SearchResponse:
    """Hospital search built from query-string parameters."""
    text = q or query
    if not text:
        raise ValidationError("Query parameter is required", details={"parameter": "q"})

    filters = SearchFilters(
        city=city or None,
        state=state or None,
        type=type,
        emergency_services=emergency_services,
        is_verified=is_verified,
        trauma_level=trauma_level or None,
    )
    return await engine.search(text, filters, SearchOptions(limit=limit))


@router.get("/hospitals/{hospital_id}/similar", response_model=SimilarHospitalsResponse)
async def similar_hospitals(
    hospital_id: str,
    threshold: float = 0.75,
    limit: int = 10,
    engine: HybridSearchEngine = Depends(get_search_engine),
) -> SimilarHospitalsResponse:
    """Hospitals closest to another hospital in embedding space."""
    return await engine.find_similar_hospitals(hospital_id, threshold, limit)


@router.post("/search/combined", response_model=CombinedSearchResult)
async def combined_search(
    request: CombinedSearchRequest,
    orchestrator: CombinedSearchOrchestrator = Depends(get_combined_search),
) -> CombinedSearchResult:
    """Search hospitals and doctors for one health concern."""
    return await orchestrator.combined_search(
        request.query,
        location=request.location,
        hospital_limit=request.filters.hospital_limit,
        doctor_limit=request.filters.doctor_limit,
    )

"""Hospital and combined search."""

from hospital_search.search.combined import CombinedSearchOrchestrator
from hospital_search.search.engine import HybridSearchEngine, validate_query
from hospital_search.search.models import (
    CombinedSearchResult,
    DoctorSummary,
    HospitalSummary,
    SearchOptions,
    SearchResponse,
    SearchResult,
    SimilarHospitalsResponse,
)
from hospital_search.search.specialties import HEALTH_CONCERN_SPECIALTIES, infer_specialties

__all__ = [
    "HEALTH_CONCERN_SPECIALTIES",
    "CombinedSearchOrchestrator",
    "CombinedSearchResult",
    "DoctorSummary",
    "HospitalSummary",
    "HybridSearchEngine",
    "SearchOptions",
    "SearchResponse",
    "SearchResult",
    "SimilarHospitalsResponse",
    "infer_specialties",
    "validate_query",
]

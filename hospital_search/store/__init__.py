"""Hospital and doctor record storage."""

from hospital_search.store.models import (
    DoctorHospital,
    DoctorRecord,
    DoctorSpecialty,
    HospitalQuery,
    HospitalRecord,
    HospitalType,
    ScoredHospital,
    SearchFilters,
)
from hospital_search.store.service import HospitalStore, QdrantHospitalStore

__all__ = [
    "DoctorHospital",
    "DoctorRecord",
    "DoctorSpecialty",
    "HospitalQuery",
    "HospitalRecord",
    "HospitalStore",
    "HospitalType",
    "QdrantHospitalStore",
    "ScoredHospital",
    "SearchFilters",
]

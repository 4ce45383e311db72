"""Hospital and doctor record models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HospitalType(str, Enum):
    """Closed set of hospital categories."""

    GENERAL = "GENERAL"
    SPECIALTY = "SPECIALTY"
    TEACHING = "TEACHING"
    CLINIC = "CLINIC"
    URGENT_CARE = "URGENT_CARE"
    REHABILITATION = "REHABILITATION"
    PSYCHIATRIC = "PSYCHIATRIC"
    CHILDRENS = "CHILDRENS"
    MATERNITY = "MATERNITY"
    MILITARY = "MILITARY"
    VETERANS = "VETERANS"


class HospitalRecord(BaseModel):
    """A hospital as stored and searched.

    Attributes:
        id: Hospital identifier (UUID string).
        embedding: Stored vector, only populated when requested.
        has_embedding: Whether a vector is currently stored.
        embedding_text_hash: Hash of the composed text the vector came from.
    """

    id: str = Field(description="Hospital identifier")
    name: str = Field(description="Hospital name")
    slug: str | None = Field(default=None, description="URL slug")
    description: str | None = Field(default=None, description="Free-text description")
    type: HospitalType | None = Field(default=None, description="Hospital category")
    city: str | None = Field(default=None, description="City")
    state: str | None = Field(default=None, description="State or region")
    trauma_level: str | None = Field(default=None, description="Trauma level code")
    emergency_services: bool = Field(default=False, description="Has an emergency department")
    is_active: bool = Field(default=True, description="Listed on the marketplace")
    is_verified: bool = Field(default=False, description="Verified by staff")
    is_featured: bool = Field(default=False, description="Featured listing")
    rating: float = Field(default=0.0, description="Average rating")
    review_count: int = Field(default=0, description="Number of reviews")
    address: str | None = Field(default=None, description="Street address")
    phone: str | None = Field(default=None, description="Phone number")
    website: str | None = Field(default=None, description="Website URL")
    updated_at: datetime | None = Field(default=None, description="Last modification time")
    has_embedding: bool = Field(default=False, description="A vector is stored")
    embedding_text_hash: str | None = Field(
        default=None,
        description="SHA-256 of the text the stored vector was generated from",
    )
    embedding: list[float] | None = Field(
        default=None,
        exclude=True,
        description="Stored vector (loaded on demand)",
    )


class DoctorSpecialty(BaseModel):
    """A doctor's specialty link."""

    name: str
    category: str | None = None
    is_primary: bool = False
    board_certified: bool = False
    years_in_specialty: int | None = None


class DoctorHospital(BaseModel):
    """A doctor's hospital affiliation."""

    hospital_id: str
    name: str
    city: str | None = None
    type: HospitalType | None = None
    rating: float | None = None
    is_primary: bool = False
    position_title: str | None = None
    department: str | None = None


class DoctorRecord(BaseModel):
    """A doctor with denormalised specialties and affiliations."""

    id: str = Field(description="Doctor identifier")
    first_name: str
    last_name: str
    title: str | None = None
    profile_image: str | None = None
    years_of_experience: int = 0
    consultation_fee: float | None = None
    is_active: bool = True
    is_verified: bool = False
    is_accepting_new_patients: bool = False
    is_telehealth_available: bool = False
    specialties: list[DoctorSpecialty] = Field(default_factory=list)
    hospitals: list[DoctorHospital] = Field(default_factory=list)


class SearchFilters(BaseModel):
    """Structured search constraints.

    Absent fields do not constrain; present fields are AND-ed.
    """

    city: str | None = Field(default=None, description="City substring")
    state: str | None = Field(default=None, description="State substring")
    type: HospitalType | None = Field(default=None, description="Exact hospital type")
    emergency_services: bool | None = Field(default=None, description="Emergency flag")
    is_verified: bool | None = Field(
        default=None,
        description="Verification flag (searches default to verified only)",
    )
    trauma_level: str | None = Field(default=None, description="Exact trauma level")


class HospitalQuery(BaseModel):
    """A filtered, ordered, bounded hospital selection.

    Attributes:
        filters: Structured constraints.
        match_any: Lower-cased terms; a row matches when any term is contained
            in any of ``match_fields``. Empty means no lexical constraint.
        match_fields: Text fields the terms are matched against.
        verified_only: Default verification constraint when the filters
            leave ``is_verified`` unset.
        limit: Maximum rows, highest rating first.
        with_vectors: Load stored vectors with the rows.
    """

    filters: SearchFilters = Field(default_factory=SearchFilters)
    match_any: list[str] = Field(default_factory=list)
    match_fields: tuple[str, ...] = ("name", "description")
    verified_only: bool = True
    limit: int = Field(default=50, ge=1)
    with_vectors: bool = False


class ScoredHospital(BaseModel):
    """A hospital paired with its vector similarity to a query."""

    hospital: HospitalRecord
    similarity: float

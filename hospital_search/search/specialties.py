"""Health concern keyword to medical specialty lookup."""

# Ordered: inferred specialties follow this order, duplicates included.
HEALTH_CONCERN_SPECIALTIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("heart", ("Cardiology", "Emergency Medicine")),
    ("chest pain", ("Cardiology", "Emergency Medicine", "Internal Medicine")),
    ("brain", ("Neurology", "Emergency Medicine")),
    ("stroke", ("Neurology", "Rehabilitation Medicine", "Physical Medicine")),
    ("rehabilitation", ("Rehabilitation Medicine", "Physical Therapy", "Occupational Therapy")),
    ("neuro rehab", ("Neurology", "Rehabilitation Medicine")),
    ("physical therapy", ("Rehabilitation Medicine", "Orthopedics")),
    ("headache", ("Neurology", "Internal Medicine")),
    ("bone", ("Orthopedics", "Emergency Medicine")),
    ("joint", ("Orthopedics", "Rheumatology")),
    ("cancer", ("Oncology",)),
    ("stomach", ("Gastroenterology", "Internal Medicine")),
    ("skin", ("Dermatology",)),
    ("eye", ("Ophthalmology",)),
    ("ear", ("ENT",)),
    ("mental", ("Psychiatry", "Psychology")),
    ("diabetes", ("Endocrinology", "Internal Medicine")),
    ("kidney", ("Nephrology", "Internal Medicine")),
    ("lung", ("Pulmonology", "Internal Medicine")),
)


def matched_concerns(query: str) -> list[str]:
    """Mapping keywords contained in the lower-cased query, in table order."""
    lowered = query.lower()
    return [keyword for keyword, _ in HEALTH_CONCERN_SPECIALTIES if keyword in lowered]


def infer_specialties(query: str) -> list[str]:
    """Union of the specialty lists for every keyword found in the query.

    Keywords are plain substrings, so "year" matches "ear". A query hitting
    "stroke" and "rehabilitation" lists "Rehabilitation Medicine" twice.
    """
    lowered = query.lower()
    specialties: list[str] = []
    for keyword, mapped in HEALTH_CONCERN_SPECIALTIES:
        if keyword in lowered:
            specialties.extend(mapped)
    return specialties

"""Renders hospital records into the text that gets embedded.

The template is the contract between stored vectors and the records they
describe: the same field values must always render to the same bytes, and
any template change requires a full reset and reindex.
"""

import hashlib
from collections.abc import Mapping
from typing import Any

from hospital_search.store.models import HospitalRecord

# Fields the composed text depends on; a change to any of them stales the vector.
EMBEDDING_FIELDS = (
    "name",
    "description",
    "type",
    "city",
    "state",
    "trauma_level",
    "emergency_services",
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    # Enum members render as their value, not "HospitalType.GENERAL".
    return str(getattr(value, "value", value))


def compose_hospital_text(record: HospitalRecord) -> str:
    """Render a hospital into its embedding text."""
    trauma = _text(record.trauma_level) or "None"
    emergency = "Available" if record.emergency_services else "Not Available"
    return (
        f"Hospital: {_text(record.name)}. "
        f"Description: {_text(record.description)}. "
        f"Type: {_text(record.type)}. "
        f"Location: {_text(record.city)}, {_text(record.state)}. "
        f"Trauma Level: {trauma}. "
        f"Emergency Services: {emergency}."
    )


def embedding_text_hash(record: HospitalRecord) -> str:
    """SHA-256 hex digest of the composed text."""
    return hashlib.sha256(compose_hospital_text(record).encode("utf-8")).hexdigest()


def is_embedding_stale(record: HospitalRecord) -> bool:
    """True when a stored vector no longer matches the record's fields.

    Vectors written without a text hash are treated as stale.
    """
    if not record.has_embedding:
        return False
    return record.embedding_text_hash != embedding_text_hash(record)


def needs_reindex(
    old_record: Mapping[str, Any] | None,
    new_record: Mapping[str, Any],
) -> bool:
    """Decide whether a hospital change event requires a new embedding.

    Args:
        old_record: Row before the change (None for inserts).
        new_record: Row after the change.

    Returns:
        True for inserts, rows without an embedding, and updates touching
        any embedded field.
    """
    if old_record is None:
        return True
    if not new_record.get("embedding") and not new_record.get("has_embedding"):
        return True
    return any(old_record.get(field) != new_record.get(field) for field in EMBEDDING_FIELDS)

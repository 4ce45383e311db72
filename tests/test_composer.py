"""Tests for the embedding text composer."""

from hospital_search.embeddings.composer import (
    compose_hospital_text,
    embedding_text_hash,
    is_embedding_stale,
    needs_reindex,
)
from hospital_search.store.models import HospitalType

from tests.conftest import make_hospital


class TestComposeHospitalText:
    """Tests for compose_hospital_text."""

    def test_exact_template(self) -> None:
        """Fields render in the fixed template order."""
        record = make_hospital(
            name="Siriraj Hospital",
            description="Teaching hospital",
            type=HospitalType.TEACHING,
            city="Bangkok",
            state="Bangkok",
            trauma_level="LEVEL_1",
            emergency_services=True,
        )

        assert compose_hospital_text(record) == (
            "Hospital: Siriraj Hospital. Description: Teaching hospital. Type: TEACHING. "
            "Location: Bangkok, Bangkok. Trauma Level: LEVEL_1. Emergency Services: Available."
        )

    def test_missing_fields(self) -> None:
        """Missing strings render empty, trauma level renders None."""
        record = make_hospital(
            name="Small Clinic",
            description=None,
            type=None,
            city=None,
            state=None,
            trauma_level=None,
            emergency_services=False,
        )

        assert compose_hospital_text(record) == (
            "Hospital: Small Clinic. Description: . Type: . Location: , . "
            "Trauma Level: None. Emergency Services: Not Available."
        )

    def test_deterministic(self) -> None:
        """Identical field values give byte-identical text."""
        first = make_hospital(id="00000000-0000-0000-0000-000000000001")
        second = make_hospital(id="00000000-0000-0000-0000-000000000002", rating=1.0)

        assert compose_hospital_text(first) == compose_hospital_text(first)
        # Non-embedded fields do not affect the text.
        assert compose_hospital_text(first).encode() == compose_hospital_text(second).encode()


class TestStaleness:
    """Tests for embedding staleness detection."""

    def test_no_embedding_is_not_stale(self) -> None:
        assert is_embedding_stale(make_hospital(has_embedding=False)) is False

    def test_fresh_embedding(self) -> None:
        record = make_hospital()
        record = record.model_copy(
            update={"has_embedding": True, "embedding_text_hash": embedding_text_hash(record)}
        )
        assert is_embedding_stale(record) is False

    def test_edited_record_is_stale(self) -> None:
        """Changing an embedded field after indexing makes the vector stale."""
        record = make_hospital()
        indexed = record.model_copy(
            update={"has_embedding": True, "embedding_text_hash": embedding_text_hash(record)}
        )
        edited = indexed.model_copy(update={"description": "Now a stroke rehabilitation centre"})

        assert is_embedding_stale(edited) is True

    def test_missing_hash_is_stale(self) -> None:
        assert is_embedding_stale(make_hospital(has_embedding=True)) is True


class TestNeedsReindex:
    """Tests for change-event reindex decisions."""

    def test_insert(self) -> None:
        assert needs_reindex(None, {"id": "1", "name": "A"}) is True

    def test_update_without_embedding(self) -> None:
        old = {"name": "A", "has_embedding": False}
        new = {"name": "A", "has_embedding": False}
        assert needs_reindex(old, new) is True

    def test_relevant_change(self) -> None:
        old = {"name": "A", "city": "Bangkok", "has_embedding": True}
        new = {"name": "A", "city": "Chiang Mai", "has_embedding": True}
        assert needs_reindex(old, new) is True

    def test_irrelevant_change(self) -> None:
        """Rating changes do not touch the composed text."""
        old = {"name": "A", "rating": 4.0, "has_embedding": True}
        new = {"name": "A", "rating": 4.5, "has_embedding": True}
        assert needs_reindex(old, new) is False

"""
Tests for the canonical reference store.
"""

import json

import pytest

from counsel.exceptions import ReferenceDataError
from counsel.reference.models import EntityType, Location
from counsel.reference.store import ReferenceRecord, ReferenceStore, load_reference_file


class TestReferenceStore:
    """Tests for building and querying stores."""

    def test_grouped_by_type(self, reference_store):
        """Entities are grouped by type in load order."""
        colleges = reference_store.entities(EntityType.COLLEGE)

        assert [e.id for e in colleges][:3] == ["c1", "c2", "c3"]
        assert reference_store.counts() == {
            "college": 9,
            "program": 6,
            "quota": 4,
            "category": 5,
            "state": 4,
        }
        assert len(reference_store) == 28

    def test_get(self, reference_store):
        """Entities are found by type and id."""
        entity = reference_store.get(EntityType.PROGRAM, "p3")

        assert entity.canonical_name == "MD RADIODIAGNOSIS"
        assert reference_store.get("program", "p3") is entity
        assert reference_store.get(EntityType.COLLEGE, "p3") is None

    def test_names_normalized(self, tables):
        """Canonical names are stored normalized."""
        store = ReferenceStore.from_records(
            [{"id": 1, "entity_type": "College", "name": "  Maulana azad mdal college,, "}],
            tables,
        )
        entity = store.get(EntityType.COLLEGE, "1")

        assert entity.canonical_name == "MAULANA AZAD MEDICAL COLLEGE"
        assert entity.id == "1"

    def test_variations(self, reference_store):
        """Variations include aliases and their short forms."""
        entity = reference_store.get(EntityType.COLLEGE, "c8")

        assert "AIIMS NEW DELHI" in entity.variations
        assert "ALL INDIA INSTITUTE OF MEDICAL SCIENCES" in entity.variations
        assert "ALL INDIA INST OF MED SCI" in entity.variations

    def test_location_completed(self, reference_store):
        """City aliases resolve and state and region are filled in."""
        entity = reference_store.get(EntityType.COLLEGE, "c8")

        assert entity.location == Location(state="DELHI", city="DELHI", region="NORTH")

    def test_no_location(self, reference_store):
        """Records without location fields have no location."""
        assert reference_store.get(EntityType.PROGRAM, "p1").location is None

    def test_term_vector(self, reference_store):
        """Stopwords are left out of term vectors."""
        entity = reference_store.get(EntityType.PROGRAM, "p6")

        assert dict(entity.term_vector) == {"MD": 1, "OBSTETRICS": 1, "GYNAECOLOGY": 1}
        assert entity.norm == pytest.approx(3 ** 0.5)

    def test_entities_immutable(self, reference_store):
        """Entity lists cannot be modified by callers."""
        colleges = reference_store.entities(EntityType.COLLEGE)

        assert isinstance(colleges, tuple)
        with pytest.raises(Exception):
            colleges[0].canonical_name = "CHANGED"

    def test_empty(self):
        """The empty store has version zero and no entities."""
        store = ReferenceStore.empty()

        assert store.version == 0
        assert store.entities(EntityType.COLLEGE) == ()

    def test_to_dict(self, reference_store):
        """Entities serialize with sorted variations."""
        data = reference_store.get(EntityType.COLLEGE, "c1").to_dict()

        assert data["id"] == "c1"
        assert data["entity_type"] == "college"
        assert data["variations"] == sorted(data["variations"])
        assert data["location"]["city"] == "CHANDIGARH"


class TestInvalidRecords:
    """Tests for rejected reference data."""

    def test_duplicate_id(self, tables):
        """Ids are unique within a type."""
        with pytest.raises(ReferenceDataError):
            ReferenceStore.from_records(
                [
                    {"id": "1", "entity_type": "quota", "name": "ALL INDIA"},
                    {"id": "1", "entity_type": "quota", "name": "STATE QUOTA"},
                ],
                tables,
            )

    def test_same_id_different_types(self, tables):
        """The same id may be used by different types."""
        store = ReferenceStore.from_records(
            [
                {"id": "1", "entity_type": "quota", "name": "ALL INDIA"},
                {"id": "1", "entity_type": "category", "name": "GENERAL"},
            ],
            tables,
        )

        assert len(store) == 2

    @pytest.mark.parametrize(
        "record",
        [
            {"id": "1", "entity_type": "college"},
            {"id": "", "entity_type": "college", "name": "X COLLEGE"},
            {"id": "1", "entity_type": "hospital", "name": "X HOSPITAL"},
            {"id": "1", "entity_type": "college", "name": "   "},
            {"id": "1", "entity_type": "college", "name": "!!!"},
        ],
    )
    def test_invalid_record(self, tables, record):
        """Missing, blank or unusable fields are rejected."""
        with pytest.raises(ReferenceDataError):
            ReferenceStore.from_records([record], tables)

    def test_record_model(self):
        """Records coerce ids and entity types."""
        record = ReferenceRecord.model_validate(
            {"id": 7, "entity_type": "STATE", "name": "Kerala", "extra": "ignored"}
        )

        assert record.id == "7"
        assert record.entity_type == EntityType.STATE


class TestLoadReferenceFile:
    """Tests for reading reference JSON."""

    def test_keyed_by_type(self, reference_file):
        """Type-keyed files are flattened with their entity type."""
        records = load_reference_file(reference_file)

        assert len(records) == 28
        assert records[0]["entity_type"] == "college"

    def test_list(self, tmp_path, reference_records):
        """Flat lists are returned as they are."""
        path = tmp_path / "reference.json"
        path.write_text(json.dumps(reference_records))

        assert load_reference_file(path) == reference_records

    def test_missing_file(self, tmp_path):
        with pytest.raises(ReferenceDataError):
            load_reference_file(tmp_path / "missing.json")

    def test_malformed(self, tmp_path):
        path = tmp_path / "reference.json"
        path.write_text("[{")

        with pytest.raises(ReferenceDataError):
            load_reference_file(path)

    @pytest.mark.parametrize("content", ['"text"', '{"college": {"id": "1"}}', '{"college": ["x"]}'])
    def test_wrong_shape(self, tmp_path, content):
        path = tmp_path / "reference.json"
        path.write_text(content)

        with pytest.raises(ReferenceDataError):
            load_reference_file(path)

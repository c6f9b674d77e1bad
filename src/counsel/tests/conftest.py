"""
Pytest configuration and shared fixtures for counsel tests.
"""

import json
from pathlib import Path
from typing import Generator

import pytest

from counsel.reference.store import ReferenceStore
from counsel.reference.tables import DomainTables
from counsel.resolution.engine import ResolutionConfig, ResolutionEngine


REFERENCE_RECORDS = {
    "college": [
        {"id": "c1", "name": "PGIMER CHANDIGARH", "city": "CHANDIGARH"},
        {"id": "c2", "name": "A.J. INSTITUTE OF MEDICAL SCIENCES", "city": "MANGALORE"},
        {"id": "c3", "name": "S.K.S. INSTITUTE OF NURSING", "city": "MADURAI"},
        {"id": "c4", "name": "SUPER KIDS SCHOOL OF NURSING", "city": "PUNE"},
        {"id": "c5", "name": "MAULANA AZAD MEDICAL COLLEGE", "city": "DELHI"},
        {"id": "c6", "name": "GOVERNMENT MEDICAL COLLEGE, KOTA", "city": "KOTA"},
        {"id": "c7", "name": "GOVERNMENT MEDICAL COLLEGE, NAGPUR", "city": "NAGPUR"},
        {
            "id": "c8",
            "name": "ALL INDIA INSTITUTE OF MEDICAL SCIENCES, NEW DELHI",
            "aliases": ["AIIMS NEW DELHI"],
            "city": "NEW DELHI",
        },
        {"id": "c9", "name": "B J MEDICAL COLLEGE, AHMEDABAD", "city": "AHMEDABAD"},
    ],
    "program": [
        {"id": "p1", "name": "MD GENERAL MEDICINE"},
        {"id": "p2", "name": "MS ORTHOPAEDICS"},
        {"id": "p3", "name": "MD RADIODIAGNOSIS"},
        {"id": "p4", "name": "MBBS"},
        {"id": "p5", "name": "BDS"},
        {"id": "p6", "name": "MD OBSTETRICS AND GYNAECOLOGY"},
    ],
    "quota": [
        {"id": "q1", "name": "ALL INDIA"},
        {"id": "q2", "name": "STATE QUOTA"},
        {"id": "q3", "name": "DEEMED"},
        {"id": "q4", "name": "MANAGEMENT"},
    ],
    "category": [
        {"id": "k1", "name": "GENERAL"},
        {"id": "k2", "name": "OBC"},
        {"id": "k3", "name": "SC"},
        {"id": "k4", "name": "ST"},
        {"id": "k5", "name": "EWS"},
    ],
    "state": [
        {"id": "s1", "name": "DELHI"},
        {"id": "s2", "name": "KARNATAKA"},
        {"id": "s3", "name": "MAHARASHTRA"},
        {"id": "s4", "name": "TAMIL NADU"},
    ],
}


def flatten_records(grouped: dict) -> list[dict]:
    """Turn type-keyed records into a flat list of records."""
    return [
        {"entity_type": entity_type, **record}
        for entity_type, records in grouped.items()
        for record in records
    ]


@pytest.fixture(scope="session")
def tables() -> DomainTables:
    """Default domain tables."""
    return DomainTables()


@pytest.fixture
def reference_records() -> list[dict]:
    """Sample canonical records for every entity type."""
    return flatten_records(REFERENCE_RECORDS)


@pytest.fixture
def reference_file(tmp_path) -> Path:
    """Sample records written as a type-keyed JSON file."""
    path = tmp_path / "reference.json"
    path.write_text(json.dumps(REFERENCE_RECORDS), encoding="utf-8")
    return path


@pytest.fixture
def reference_store(reference_records, tables) -> ReferenceStore:
    """Store built from the sample records."""
    return ReferenceStore.from_records(reference_records, tables)


@pytest.fixture
def engine_config() -> ResolutionConfig:
    """Engine configuration used by the tests."""
    return ResolutionConfig()


@pytest.fixture
def engine(reference_store, tables, engine_config) -> Generator[ResolutionEngine, None, None]:
    """Engine over the sample reference store."""
    engine = ResolutionEngine(store=reference_store, tables=tables, config=engine_config)
    yield engine
    engine.close()

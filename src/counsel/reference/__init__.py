"""
Canonical reference data.

- Models: Canonical entities, locations and term vectors
- Tables: OCR, synonym, word-form and location lookup tables
- Store: Immutable per-type entity snapshot built from raw records
"""

from counsel.reference.models import (
    CanonicalEntity,
    EntityType,
    Location,
    term_vector,
    cosine_similarity,
)
from counsel.reference.tables import DomainTables, CityEntry, load_domain_tables
from counsel.reference.store import (
    ReferenceStore,
    ReferenceRecord,
    load_reference_file,
)

__all__ = [
    # Models
    "CanonicalEntity",
    "EntityType",
    "Location",
    "term_vector",
    "cosine_similarity",
    # Tables
    "DomainTables",
    "CityEntry",
    "load_domain_tables",
    # Store
    "ReferenceStore",
    "ReferenceRecord",
    "load_reference_file",
]

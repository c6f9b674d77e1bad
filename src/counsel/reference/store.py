"""
In-memory canonical reference store.

A store is an immutable snapshot: it is built in one pass from raw
records and either succeeds completely or raises, so a half-built store
is never visible to resolution calls.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from counsel.exceptions import ReferenceDataError
from counsel.reference.models import (
    CanonicalEntity,
    EntityType,
    Location,
    term_vector,
    vector_norm,
)
from counsel.reference.tables import DomainTables
from counsel.text.normalizer import TextNormalizer
from counsel.text.variations import VariationGenerator

logger = logging.getLogger(__name__)


class ReferenceRecord(BaseModel):
    """A raw reference row as supplied by the reference-data loader."""

    model_config = ConfigDict(extra="ignore")

    id: str
    entity_type: EntityType
    name: str
    aliases: list[str] = []
    state: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("id", "name")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cannot be blank")
        return v.strip()

    @field_validator("entity_type", mode="before")
    @classmethod
    def lower_entity_type(cls, v):
        return v.lower() if isinstance(v, str) else v


class ReferenceStore:
    """
    Read-only collection of canonical entities grouped by type.

    Shared by all concurrent resolution calls without locking.
    """

    def __init__(
        self,
        entities: Iterable[CanonicalEntity],
        version: int = 1,
        loaded_at: Optional[datetime] = None,
    ):
        grouped: dict[EntityType, list[CanonicalEntity]] = {t: [] for t in EntityType}
        index: dict[tuple[str, str], CanonicalEntity] = {}
        for entity in entities:
            if entity.key in index:
                raise ReferenceDataError(
                    f"Duplicate {entity.entity_type.value} id '{entity.id}'"
                )
            index[entity.key] = entity
            grouped[entity.entity_type].append(entity)

        self._by_type = {t: tuple(items) for t, items in grouped.items()}
        self._index = index
        self.version = version
        self.loaded_at = loaded_at or datetime.utcnow()

    @classmethod
    def empty(cls) -> "ReferenceStore":
        return cls([], version=0)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Union[dict[str, Any], ReferenceRecord]],
        tables: Optional[DomainTables] = None,
        version: int = 1,
    ) -> "ReferenceStore":
        """
        Build a store from raw records.

        Args:
            records: Dicts or ReferenceRecord instances
            tables: Domain tables used for normalization and variations
            version: Version number stamped on the new store

        Raises:
            ReferenceDataError: If any record is invalid, normalizes to an
                empty name, or duplicates another record's id
        """
        tables = tables or DomainTables()
        normalizer = TextNormalizer(tables.ocr_rules)
        generator = VariationGenerator(tables.word_forms, normalizer)

        entities = []
        for position, raw in enumerate(records):
            try:
                record = (
                    raw if isinstance(raw, ReferenceRecord)
                    else ReferenceRecord.model_validate(raw)
                )
            except ValidationError as e:
                raise ReferenceDataError(f"Invalid reference record #{position}: {e}") from e
            entities.append(build_entity(record, tables, normalizer, generator))

        return cls(entities, version=version)

    def entities(self, entity_type: EntityType) -> tuple[CanonicalEntity, ...]:
        """All entities of one type, in load order."""
        return self._by_type.get(EntityType(entity_type), ())

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[CanonicalEntity]:
        return self._index.get((EntityType(entity_type).value, entity_id))

    def counts(self) -> dict[str, int]:
        return {t.value: len(items) for t, items in self._by_type.items()}

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"ReferenceStore(version={self.version}, entities={len(self)})"


def build_entity(
    record: ReferenceRecord,
    tables: DomainTables,
    normalizer: TextNormalizer,
    generator: VariationGenerator,
) -> CanonicalEntity:
    """Normalize a record and precompute its variations and term vector."""
    name = normalizer.normalize(record.name)
    if not name:
        raise ReferenceDataError(
            f"{record.entity_type.value} '{record.id}' has no usable name: {record.name!r}"
        )

    variations = set(generator.variations_of(name))
    for alias in record.aliases:
        variations |= generator.variations_of(alias)
    variations.add(name)

    location = None
    if record.state or record.city or record.region:
        location = tables.complete_location(
            Location(
                state=normalizer.normalize(record.state) or None,
                city=normalizer.normalize(record.city) or None,
                region=normalizer.normalize(record.region) or None,
            )
        )

    vector = term_vector(name)
    return CanonicalEntity(
        id=record.id,
        entity_type=record.entity_type,
        canonical_name=name,
        variations=frozenset(variations),
        location=location,
        term_vector=vector,
        norm=vector_norm(vector),
    )


def load_reference_file(path: Union[str, Path]) -> list[dict[str, Any]]:
    """
    Read reference records from JSON.

    Accepts either a list of records (each with an entity_type) or an
    object keyed by entity type whose values are record lists.

    Raises:
        ReferenceDataError: If the file cannot be read or has the wrong shape
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ReferenceDataError(f"Cannot read reference data from {path}: {e}") from e

    if isinstance(data, list):
        return data

    if isinstance(data, dict):
        records = []
        for entity_type, items in data.items():
            if not isinstance(items, list):
                raise ReferenceDataError(
                    f"Reference data for '{entity_type}' in {path} must be a list"
                )
            for item in items:
                if not isinstance(item, dict):
                    raise ReferenceDataError(
                        f"Reference record for '{entity_type}' in {path} must be an object"
                    )
                records.append({"entity_type": entity_type, **item})
        return records

    raise ReferenceDataError(f"Reference data in {path} must be a list or an object")

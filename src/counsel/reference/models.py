"""
Canonical reference entities.

Entities are built once per reference-data load and never mutated;
a reload replaces the whole set.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class EntityType(str, Enum):
    """Kinds of canonical entities a field can resolve to."""

    COLLEGE = "college"
    PROGRAM = "program"
    QUOTA = "quota"
    CATEGORY = "category"
    STATE = "state"


# Tokens ignored when building term vectors
STOPWORDS = frozenset({"OF", "AND", "THE", "FOR", "IN", "AT"})

VECTOR_TOKEN = re.compile(r"[A-Z0-9]+")


def term_vector(text: str) -> Mapping[str, int]:
    """Term-frequency vector of a normalized string."""
    counts = Counter(t for t in VECTOR_TOKEN.findall(text) if t not in STOPWORDS)
    return MappingProxyType(dict(counts))


def vector_norm(vector: Mapping[str, int]) -> float:
    return math.sqrt(sum(v * v for v in vector.values()))


def cosine_similarity(
    a: Mapping[str, int], b: Mapping[str, int], norm_a: float, norm_b: float
) -> float:
    """Cosine similarity of two term vectors with precomputed norms."""
    if not norm_a or not norm_b:
        return 0.0
    if len(a) > len(b):
        a, b = b, a
    dot = sum(count * b.get(term, 0) for term, count in a.items())
    return dot / (norm_a * norm_b)


@dataclass(frozen=True)
class Location:
    """Where a college is; any part may be unknown."""

    state: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.state or self.city or self.region)

    def to_dict(self) -> dict[str, Optional[str]]:
        return {"state": self.state, "city": self.city, "region": self.region}


@dataclass(frozen=True)
class CanonicalEntity:
    """An authoritative record that noisy input is reconciled against."""

    id: str
    entity_type: EntityType
    canonical_name: str
    variations: frozenset[str] = field(default_factory=frozenset, compare=False)
    location: Optional[Location] = field(default=None, compare=False)
    term_vector: Mapping[str, int] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, repr=False
    )
    norm: float = field(default=0.0, compare=False, repr=False)

    @property
    def key(self) -> tuple[str, str]:
        """Identity used when grouping candidates across strategies."""
        return (self.entity_type.value, self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "canonical_name": self.canonical_name,
            "variations": sorted(self.variations),
            "location": self.location.to_dict() if self.location else None,
        }

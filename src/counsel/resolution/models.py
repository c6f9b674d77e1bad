"""
Value types passed between strategies, the orchestrator and fusion.

None of these outlive a single resolution call.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Container, Iterable, Optional, Sequence, Union

from counsel.reference.models import CanonicalEntity, EntityType, Location
from counsel.reference.tables import DomainTables
from counsel.text.abbreviations import abbreviation_units
from counsel.text.normalizer import WHITESPACE, TextNormalizer, normalize_text
from counsel.text.variations import VariationGenerator, name_tokens


WILDCARD_DISALLOWED = re.compile(r"[^A-Z0-9 .\-&(),*?]")


@dataclass(frozen=True)
class Query:
    """
    An immutable query, with everything strategies need derived once.

    Attributes:
        raw_text: Text as supplied by the caller
        entity_type: Entity type being resolved
        location_hint: Optional caller-supplied location
        normalized: Normalized query text; empty for /pattern/ queries
        forms: Normalized query variations (no initials forms)
        tokens: Word tokens of the normalized text
        abbreviation_units: Units when the query looks like an abbreviation
        wildcard_text: Uppercased text keeping * and ?, if any are present
        pattern: Caller-delimited /pattern/ body, if any
        regex_timeout: Seconds allowed for pattern evaluation
    """

    raw_text: str
    entity_type: EntityType
    location_hint: Optional[Location] = None
    normalized: str = ""
    forms: frozenset[str] = field(default_factory=frozenset)
    tokens: tuple[str, ...] = ()
    abbreviation_units: Optional[tuple[str, ...]] = None
    wildcard_text: Optional[str] = None
    pattern: Optional[str] = None
    regex_timeout: float = 0.05

    @classmethod
    def parse(
        cls,
        raw_text: str,
        entity_type: EntityType,
        location_hint: Optional[Location] = None,
        normalizer: Optional[TextNormalizer] = None,
        generator: Optional[VariationGenerator] = None,
        regex_timeout: float = 0.05,
        known_words: Container[str] = (),
    ) -> "Query":
        """
        Derive normalized text, forms and query flags from raw input.

        known_words lists words (place names) that are never read as
        abbreviations even when typed in capitals.
        """
        raw_text = raw_text if isinstance(raw_text, str) else ""
        normalizer = normalizer or TextNormalizer()
        generator = generator or VariationGenerator(normalizer=normalizer)

        stripped = raw_text.strip()
        pattern = None
        if len(stripped) > 2 and stripped.startswith("/") and stripped.endswith("/"):
            pattern = stripped[1:-1]

        wildcard_text = None
        if pattern is None and ("*" in raw_text or "?" in raw_text):
            text = WHITESPACE.sub(" ", raw_text.upper())
            wildcard_text = WILDCARD_DISALLOWED.sub("", text).strip() or None

        # A pattern is not text: only the pattern strategies see it
        normalized = "" if pattern is not None else normalizer.normalize(raw_text)
        forms = generator.variations_of(normalized, include_initials=False) if normalized else frozenset()

        return cls(
            raw_text=raw_text,
            entity_type=EntityType(entity_type),
            location_hint=location_hint or None,
            normalized=normalized,
            forms=forms,
            tokens=tuple(name_tokens(normalized)),
            abbreviation_units=abbreviation_units(normalized, raw_text, known_words),
            wildcard_text=wildcard_text,
            pattern=pattern,
            regex_timeout=regex_timeout,
        )

    @property
    def is_empty(self) -> bool:
        return not self.normalized and not self.wildcard_text and not self.pattern

    @property
    def is_abbreviation(self) -> bool:
        return self.abbreviation_units is not None

    @property
    def has_wildcard(self) -> bool:
        return self.wildcard_text is not None


@dataclass(frozen=True)
class MatchCandidate:
    """A candidate produced by one strategy for one query."""

    entity: CanonicalEntity
    raw_score: float
    match_kind: str
    strategy_name: str
    additive: bool = False  # boosts only; never originates a fused result


@dataclass(frozen=True)
class StrategyContribution:
    """One strategy's weighted vote for a fused result."""

    strategy_name: str
    raw_score: float
    reliability_weight: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_name": self.strategy_name,
            "raw_score": round(self.raw_score, 2),
            "reliability_weight": round(self.reliability_weight, 4),
        }


@dataclass
class FusedResult:
    """A ranked, confidence-scored answer after fusion."""

    entity: CanonicalEntity
    final_score: float
    contributing_strategies: list[StrategyContribution] = field(default_factory=list)
    match_kinds: list[str] = field(default_factory=list)
    location_boost: float = 0.0

    def accepted(self, threshold: float = 70.0) -> bool:
        """Whether a caller applying this threshold should accept the match."""
        return self.final_score >= threshold

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entity": self.entity.to_dict(),
            "final_score": round(self.final_score, 2),
            "contributing_strategies": [c.to_dict() for c in self.contributing_strategies],
            "match_kinds": list(self.match_kinds),
            "location_boost": round(self.location_boost, 2),
        }


def _names(value: Union[str, Iterable[str], None]) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class SearchFilters:
    """
    Restrictions applied to ranked search results before the limit.

    Location fields take one name or a list of names, and a result passes
    when its entity's location matches any of them; entities without a
    location never pass a location filter. City names may be aliases
    ("BOMBAY"). The score bounds are inclusive.
    """

    state: Union[str, Sequence[str], None] = None
    city: Union[str, Sequence[str], None] = None
    region: Union[str, Sequence[str], None] = None
    min_score: Optional[float] = None
    max_score: Optional[float] = None

    def __post_init__(self):
        if (
            self.min_score is not None
            and self.max_score is not None
            and self.min_score > self.max_score
        ):
            raise ValueError("min_score cannot exceed max_score")

    def predicate(self, tables: DomainTables) -> Callable[[FusedResult], bool]:
        """Compile the filters against the domain tables."""
        states = {normalize_text(s) for s in _names(self.state)} - {""}
        regions = {normalize_text(r) for r in _names(self.region)} - {""}
        cities = set()
        for name in _names(self.city):
            name = normalize_text(name)
            if name:
                cities.add(tables.canonical_city(name) or name)
        by_location = bool(states or cities or regions)

        def accept(result: FusedResult) -> bool:
            if self.min_score is not None and result.final_score < self.min_score:
                return False
            if self.max_score is not None and result.final_score > self.max_score:
                return False
            if not by_location:
                return True

            location = result.entity.location
            if location is None:
                return False
            if states and location.state not in states:
                return False
            if cities and location.city not in cities:
                return False
            if regions and location.region not in regions:
                return False
            return True

        return accept


class StrategyStatus(str, Enum):
    """How a strategy dispatch settled."""

    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"  # not applicable to this query


@dataclass
class StrategyOutcome:
    """Result of dispatching one strategy."""

    name: str
    status: StrategyStatus
    candidates: list[MatchCandidate] = field(default_factory=list)
    elapsed_ms: float = 0.0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StrategyStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "candidates": len(self.candidates),
            "elapsed_ms": round(self.elapsed_ms, 2),
            "error": self.error,
        }


@dataclass
class ResolutionReport:
    """Fused results together with the per-strategy execution record."""

    query: Query
    results: list[FusedResult]
    outcomes: list[StrategyOutcome] = field(default_factory=list)
    duration_ms: float = 0.0
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "query": self.query.raw_text,
            "normalized": self.query.normalized,
            "entity_type": self.query.entity_type.value,
            "results": [r.to_dict() for r in self.results],
            "strategies": [o.to_dict() for o in self.outcomes],
            "duration_ms": round(self.duration_ms, 2),
            "cached": self.cached,
        }

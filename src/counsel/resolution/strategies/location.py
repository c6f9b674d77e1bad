"""
Location-aware matching for colleges.

Colleges with the same name exist in many cities ("GOVT MEDICAL
COLLEGE"). The location comes from the caller's hint or from the
query's trailing comma segment (or last words), and candidates in that
city, state or region are boosted. Boosts never surface a candidate on
their own; fusion only applies them to candidates another strategy
found. A query that is nothing but a place name produces small
stand-alone matches instead.
"""

import logging
from typing import Optional, Sequence

from counsel.reference.models import CanonicalEntity, EntityType, Location
from counsel.reference.tables import DomainTables
from counsel.resolution.models import MatchCandidate, Query
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.text.variations import comma_head, comma_tail

logger = logging.getLogger(__name__)


# Additive boosts for a candidate found by another strategy
CITY_BOOST = 30.0
STATE_BOOST = 20.0
REGION_BOOST = 10.0

# Stand-alone scores for a bare location query
CITY_MATCH = 25.0
STATE_MATCH = 20.0
REGION_MATCH = 15.0

# Trailing words tried as a location when the query has no comma
MAX_TRAILING_WORDS = 2


class LocationAwareStrategy(MatchingStrategy):
    """City/state/region boosts and bare-location matches for colleges."""

    prior = 0.5

    def __init__(self, tables: DomainTables):
        self.tables = tables

    @property
    def name(self) -> str:
        return "location"

    def applies_to(self, query: Query) -> bool:
        return query.entity_type == EntityType.COLLEGE and (
            bool(query.normalized) or bool(query.location_hint)
        )

    def infer_location(self, query: Query) -> Optional[Location]:
        """Location named by the query text itself, if any."""
        text = query.normalized
        tail = comma_tail(text)
        if tail:
            return self.tables.resolve_location(tail)

        words = text.split()
        for size in range(min(MAX_TRAILING_WORDS, len(words) - 1), 0, -1):
            location = self.tables.resolve_location(" ".join(words[-size:]))
            if location:
                return location
        return None

    @staticmethod
    def _level(target: Location, location: Optional[Location]) -> Optional[str]:
        if not location:
            return None
        if target.city and location.city == target.city:
            return "city"
        if target.state and location.state == target.state:
            return "state"
        if target.region and location.region == target.region:
            return "region"
        return None

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        if query.entity_type != EntityType.COLLEGE:
            return []

        bare = self.tables.resolve_location(comma_head(query.normalized)) if query.normalized else None
        if bare and not comma_tail(query.normalized):
            return self._standalone(bare, candidates)

        targets = [t for t in (query.location_hint, self.infer_location(query)) if t]
        if not targets:
            return []

        boosts = {"city": CITY_BOOST, "state": STATE_BOOST, "region": REGION_BOOST}
        results = []
        for entity in candidates:
            best = None
            for target in targets:
                level = self._level(target, entity.location)
                if level and (best is None or boosts[level] > boosts[best]):
                    best = level
            if best:
                results.append(
                    self.candidate(entity, boosts[best], f"location:{best}", additive=True)
                )

        return results

    def _standalone(
        self, location: Location, candidates: Sequence[CanonicalEntity]
    ) -> list[MatchCandidate]:
        scores = {"city": CITY_MATCH, "state": STATE_MATCH, "region": REGION_MATCH}
        results = []
        for entity in candidates:
            level = self._level(location, entity.location)
            if level:
                results.append(self.candidate(entity, scores[level], f"location:{level}"))
        return results

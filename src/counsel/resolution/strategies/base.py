"""
Base class for matching strategies.

A strategy is a pure function of (query, candidates): it holds only
read-only configuration and never shares mutable state, so the
orchestrator can run all strategies concurrently.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from counsel.reference.models import CanonicalEntity
from counsel.resolution.models import MatchCandidate, Query


class MatchingStrategy(ABC):
    """Base class for matching strategies."""

    # Expected accuracy of this strategy's matches, used as fusion weight
    prior: float = 0.5

    # Whether abbreviation queries increase this strategy's weight
    abbreviation_aware: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this strategy."""
        pass

    def applies_to(self, query: Query) -> bool:
        """Whether this strategy should run for the query at all."""
        return bool(query.normalized)

    @abstractmethod
    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        """
        Match a query against candidate entities.

        Args:
            query: Parsed query
            candidates: Canonical entities of the query's entity type

        Returns:
            Scored candidates (0-100); empty when nothing matches or the
            input is empty or too short for this strategy
        """
        pass

    def candidate(
        self,
        entity: CanonicalEntity,
        score: float,
        kind: str,
        additive: bool = False,
    ) -> MatchCandidate:
        return MatchCandidate(
            entity=entity,
            raw_score=max(0.0, min(100.0, score)),
            match_kind=kind,
            strategy_name=self.name,
            additive=additive,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(prior={self.prior})"

"""
Fusion of per-strategy candidate lists into one ranked answer.

For each query:
1. Every strategy gets a reliability weight: its prior, x1.5 for
   abbreviation-aware strategies on abbreviation queries, x0.1 when it
   found nothing.
2. Candidates are grouped by entity. The fused score is the best
   weighted score plus corroboration bonuses (per extra strategy, exact
   match, abbreviation or phonetic match) plus any location boost.
3. Scores are clamped to [30, 100] and sorted.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from counsel.reference.models import CanonicalEntity
from counsel.resolution.models import (
    FusedResult,
    MatchCandidate,
    Query,
    StrategyContribution,
    StrategyOutcome,
)
from counsel.resolution.strategies.base import MatchingStrategy

logger = logging.getLogger(__name__)


@dataclass
class FusionWeights:
    """Weights and bonuses applied during fusion."""

    abbreviation_multiplier: float = 1.5
    empty_result_multiplier: float = 0.1
    corroboration_bonus: float = 10.0
    exact_bonus: float = 20.0
    abbreviation_phonetic_bonus: float = 15.0
    max_location_boost: float = 30.0
    min_score: float = 30.0
    max_score: float = 100.0


# Match-kind families that earn the abbreviation/phonetic bonus
DERIVED_FAMILIES = frozenset({"abbreviation", "phonetic"})


def kind_family(match_kind: str) -> str:
    """'fuzzy:distance=2' -> 'fuzzy'."""
    return match_kind.split(":", 1)[0]


@dataclass
class _EntityVotes:
    entity: CanonicalEntity
    best: dict[str, MatchCandidate] = field(default_factory=dict)
    kinds: list[str] = field(default_factory=list)

    def add(self, candidate: MatchCandidate) -> None:
        current = self.best.get(candidate.strategy_name)
        if current is None or candidate.raw_score > current.raw_score:
            self.best[candidate.strategy_name] = candidate
        if candidate.match_kind not in self.kinds:
            self.kinds.append(candidate.match_kind)


class FusionScorer:
    """Deterministic merge of strategy outcomes into FusedResults."""

    def __init__(self, weights: Optional[FusionWeights] = None):
        self.weights = weights or FusionWeights()

    def reliability_weight(
        self, strategy: MatchingStrategy, query: Query, returned_any: bool
    ) -> float:
        """Weight of one strategy's scores for this query."""
        weight = strategy.prior
        if query.is_abbreviation and strategy.abbreviation_aware:
            weight *= self.weights.abbreviation_multiplier
        if not returned_any:
            weight *= self.weights.empty_result_multiplier
        return weight

    def fuse(
        self,
        query: Query,
        outcomes: Sequence[StrategyOutcome],
        strategies: Mapping[str, MatchingStrategy],
    ) -> list[FusedResult]:
        """
        Merge strategy outcomes into a ranked list.

        Args:
            query: The query all outcomes were produced for
            outcomes: Outcomes in dispatch order
            strategies: Strategies by name, for priors

        Returns:
            Fused results, best first
        """
        weights: dict[str, float] = {}
        votes: dict[tuple[str, str], _EntityVotes] = {}

        for outcome in outcomes:
            strategy = strategies.get(outcome.name)
            if strategy is None:
                logger.warning(f"Ignoring outcome from unknown strategy '{outcome.name}'")
                continue
            weights[outcome.name] = self.reliability_weight(
                strategy, query, bool(outcome.candidates)
            )
            for candidate in outcome.candidates:
                key = candidate.entity.key
                if key not in votes:
                    votes[key] = _EntityVotes(entity=candidate.entity)
                votes[key].add(candidate)

        results = []
        for entity_votes in votes.values():
            result = self._score(entity_votes, weights)
            if result is not None:
                results.append(result)

        results.sort(key=self.sort_key)
        return results

    def _score(
        self, votes: _EntityVotes, weights: Mapping[str, float]
    ) -> Optional[FusedResult]:
        w = self.weights
        originating = [c for c in votes.best.values() if not c.additive]
        # Location boosts never surface an entity on their own
        if not originating:
            return None

        base = max(c.raw_score * weights[c.strategy_name] for c in originating)
        score = base + w.corroboration_bonus * (len(votes.best) - 1)

        families = {kind_family(k) for k in votes.kinds}
        if "exact" in families:
            score += w.exact_bonus
        if families & DERIVED_FAMILIES:
            score += w.abbreviation_phonetic_bonus

        boosts = [c.raw_score for c in votes.best.values() if c.additive]
        boost = min(w.max_location_boost, max(boosts)) if boosts else 0.0
        score += boost

        score = max(w.min_score, min(w.max_score, score))

        contributions = [
            StrategyContribution(
                strategy_name=c.strategy_name,
                raw_score=c.raw_score,
                reliability_weight=weights[c.strategy_name],
            )
            for c in votes.best.values()
        ]
        return FusedResult(
            entity=votes.entity,
            final_score=score,
            contributing_strategies=contributions,
            match_kinds=list(votes.kinds),
            location_boost=boost,
        )

    @staticmethod
    def sort_key(result: FusedResult):
        """
        Score desc, then direct exact matches, then the larger location
        boost (which a clamped score can hide), then shorter and lexically
        first names.
        """
        has_exact = "exact" in result.match_kinds
        name = result.entity.canonical_name
        return (
            -result.final_score,
            not has_exact,
            -result.location_boost,
            len(name),
            name,
            result.entity.id,
        )

"""
Abbreviation-pattern matching.

Deterministic replacement for learned abbreviation classifiers: for an
abbreviation query the exact substrings a real abbreviation would take
are synthesized and looked up in the dot-stripped canonical name.
Loose letter overlap never matches; "SKS" finds "S.K.S. HOSPITAL" but
not "SUPER KIDS SCHOOL OF NURSING".
"""

from typing import Optional, Sequence

from counsel.reference.models import STOPWORDS, CanonicalEntity
from counsel.resolution.models import MatchCandidate, Query
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.text.abbreviations import (
    abbreviation_patterns,
    concatenated_initials,
    find_pattern,
    strip_dots,
)
from counsel.text.variations import comma_head


class AbbreviationPatternStrategy(MatchingStrategy):
    """
    Score synthesized abbreviation patterns found in candidate names.

    Score = BASE_SCORE
          + POSITION_BONUS at the start of the name (else proportional to
            how early the pattern occurs)
          + EXACT_BONUS when the matched pattern is the query itself
    """

    prior = 0.95
    abbreviation_aware = True

    BASE_SCORE = 50.0
    POSITION_BONUS = 30.0
    EXACT_BONUS = 20.0

    @property
    def name(self) -> str:
        return "abbreviation"

    def applies_to(self, query: Query) -> bool:
        return query.is_abbreviation

    def score_name(
        self, stripped_name: str, patterns: Sequence[str], query_key: str
    ) -> Optional[float]:
        """Best score of any pattern in a dot-stripped name, or None."""
        best = None
        for pattern in patterns:
            position = find_pattern(pattern, stripped_name)
            if position < 0:
                continue
            if position == 0:
                score = self.BASE_SCORE + self.POSITION_BONUS
            else:
                score = self.BASE_SCORE + self.POSITION_BONUS * (
                    1 - position / len(stripped_name)
                )
            if strip_dots(pattern) == query_key:
                score += self.EXACT_BONUS
            score = min(100.0, score)
            if best is None or score > best:
                best = score
        return best

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        units = query.abbreviation_units
        if not units:
            return []

        patterns = abbreviation_patterns(units)
        query_key = strip_dots(query.normalized)
        # A single long unit may also be the concatenated initials ("MSRMC")
        initials_unit = units[0] if len(units) == 1 and len(units[0]) > 3 else None

        results = []
        for entity in candidates:
            stripped = strip_dots(entity.canonical_name)
            score = self.score_name(stripped, patterns, query_key)
            kind = "abbreviation:pattern"
            if score is None and initials_unit:
                heads = {stripped, strip_dots(comma_head(entity.canonical_name))}
                if any(
                    initials_unit in (concatenated_initials(h), concatenated_initials(h, STOPWORDS))
                    for h in heads
                ):
                    score = self.BASE_SCORE + self.POSITION_BONUS
                    kind = "abbreviation:initials"
            if score is not None:
                results.append(self.candidate(entity, score, kind))

        return results

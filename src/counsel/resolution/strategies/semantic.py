"""
Semantic strategies: synonym expansion and term-vector cosine similarity.
"""

import re
from typing import Sequence

from counsel.reference.models import (
    CanonicalEntity,
    cosine_similarity,
    term_vector,
    vector_norm,
)
from counsel.reference.tables import DomainTables
from counsel.resolution.models import MatchCandidate, Query
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.resolution.strategies.lexical import entity_names


def phrase_text(text: str) -> str:
    """Name text with commas turned into plain word breaks."""
    return " ".join(text.replace(",", " ").split())


def phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<![A-Z0-9]){re.escape(phrase)}(?![A-Z0-9])")


class SynonymStrategy(MatchingStrategy):
    """
    Domain synonym expansion.

    The query is split into phrases of up to the longest synonym length,
    and each phrase found in a synonym group is expanded to its
    alternatives ("BOMBAY HOSPITAL" -> MUMBAI). A candidate matches when
    any expansion appears in one of its names as a whole phrase; commas
    count as word breaks, so "GRANT MEDICAL COLLEGE BOMBAY" matches
    "GRANT MEDICAL COLLEGE, MUMBAI". Groups are symmetric, so a candidate
    phrase whose alternatives include a query phrase is found the same way.
    """

    prior = 0.4

    SCORE = 30.0
    MIN_LENGTH = 2

    def __init__(self, tables: DomainTables):
        self.tables = tables

    @property
    def name(self) -> str:
        return "synonym"

    def applies_to(self, query: Query) -> bool:
        return len(query.normalized) >= self.MIN_LENGTH

    def expansions(self, query: Query) -> set[str]:
        """Alternatives of every query phrase that has synonyms."""
        tokens = phrase_text(query.normalized).split()
        longest = min(len(tokens), self.tables.max_synonym_tokens)
        terms = set()
        for size in range(longest, 0, -1):
            for start in range(len(tokens) - size + 1):
                phrase = " ".join(tokens[start:start + size])
                terms |= self.tables.synonyms_for(phrase)
        return terms

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        terms = self.expansions(query)
        if not terms:
            return []

        patterns = [phrase_pattern(t) for t in sorted(terms)]
        results = []
        for entity in candidates:
            names = [phrase_text(n) for n in entity_names(entity)]
            if any(p.search(name) for p in patterns for name in names):
                results.append(self.candidate(entity, self.SCORE, "synonym"))

        return results


class CosineStrategy(MatchingStrategy):
    """Cosine similarity between query and entity term-frequency vectors."""

    prior = 0.6

    def __init__(self, threshold: float = 0.3):
        self.threshold = threshold

    @property
    def name(self) -> str:
        return "cosine"

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        vector = term_vector(query.normalized)
        norm = vector_norm(vector)
        if not norm:
            return []

        results = []
        for entity in candidates:
            similarity = cosine_similarity(vector, entity.term_vector, norm, entity.norm)
            if similarity > self.threshold:
                results.append(self.candidate(entity, similarity * 100, "cosine"))

        return results

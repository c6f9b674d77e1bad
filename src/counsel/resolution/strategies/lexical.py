"""
Lexical strategies: exact, substring and token-prefix matching.
"""

from typing import Sequence

from counsel.reference.models import CanonicalEntity
from counsel.resolution.models import MatchCandidate, Query
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.text.abbreviations import strip_dots
from counsel.text.variations import name_tokens


def entity_names(entity: CanonicalEntity) -> frozenset[str]:
    """Canonical name plus every variation."""
    return entity.variations | {entity.canonical_name}


def is_initials(name: str) -> bool:
    """Whether a name is only single-letter initials ("S.K.S.", "A J")."""
    tokens = strip_dots(name).split()
    return len(tokens) > 1 and all(len(t) == 1 for t in tokens)


class ExactStrategy(MatchingStrategy):
    """
    Any query form equals the canonical name or one of its variations.

    The kind is "exact" when the normalized query itself matches and
    "exact:variation" when only a derived form does, so that
    "GOVT MEDICAL COLLEGE, NAGPUR" prefers the Nagpur college over
    another one that merely shares "GOVT MEDICAL COLLEGE".
    """

    prior = 1.0
    abbreviation_aware = True

    SCORE = 100.0

    @property
    def name(self) -> str:
        return "exact"

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        if not query.forms:
            return []

        results = []
        for entity in candidates:
            names = entity_names(entity)
            if query.normalized in names:
                results.append(self.candidate(entity, self.SCORE, "exact"))
            elif not query.forms.isdisjoint(names):
                results.append(self.candidate(entity, self.SCORE, "exact:variation"))
        return results


class SubstringStrategy(MatchingStrategy):
    """
    Containment in either direction.

    Tighter containment ranks higher: the score loses half a point per
    character of length difference, up to MAX_PENALTY.
    """

    prior = 0.85

    SCORE = 80.0
    MAX_PENALTY = 15.0
    MIN_LENGTH = 3

    @property
    def name(self) -> str:
        return "substring"

    def applies_to(self, query: Query) -> bool:
        return len(query.normalized) >= self.MIN_LENGTH

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        forms = [f for f in query.forms if len(f) >= self.MIN_LENGTH]
        if not forms:
            return []

        results = []
        for entity in candidates:
            best_gap = None
            for name in entity_names(entity):
                # Initials only count when equal, which ExactStrategy covers
                if len(name) < self.MIN_LENGTH or is_initials(name):
                    continue
                for form in forms:
                    if form in name or name in form:
                        gap = abs(len(name) - len(form))
                        if best_gap is None or gap < best_gap:
                            best_gap = gap
            if best_gap is not None:
                score = self.SCORE - min(self.MAX_PENALTY, 0.5 * best_gap)
                results.append(self.candidate(entity, score, "substring"))

        return results


class TokenPrefixStrategy(MatchingStrategy):
    """
    Query tokens are prefixes of consecutive candidate tokens.

    A one-token query matches any candidate token it starts; "MAUL AZAD"
    matches "MAULANA AZAD MEDICAL COLLEGE". Dots count as separators so
    "A J" matches "A.J. INSTITUTE".
    """

    prior = 0.85
    abbreviation_aware = True

    SCORE = 70.0
    MIN_LENGTH = 2

    @property
    def name(self) -> str:
        return "token_prefix"

    def applies_to(self, query: Query) -> bool:
        return len(query.normalized) >= self.MIN_LENGTH

    @staticmethod
    def _tokens(text: str) -> list[str]:
        return name_tokens(strip_dots(text))

    @staticmethod
    def _token_matches(query_token: str, token: str, multi: bool) -> bool:
        # In a multi-token query a lone letter is an initial, not a prefix
        if multi and len(query_token) == 1:
            return token == query_token
        return token.startswith(query_token)

    def _prefix_run(self, query_tokens: list[str], tokens: list[str]) -> bool:
        n = len(query_tokens)
        multi = n > 1
        for start in range(len(tokens) - n + 1):
            if all(
                self._token_matches(query_tokens[i], tokens[start + i], multi)
                for i in range(n)
            ):
                return True
        return False

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        query_tokens = self._tokens(query.normalized)
        if not query_tokens or len("".join(query_tokens)) < self.MIN_LENGTH:
            return []

        results = []
        for entity in candidates:
            for name in entity_names(entity):
                if is_initials(name):
                    continue
                if self._prefix_run(query_tokens, self._tokens(name)):
                    results.append(self.candidate(entity, self.SCORE, "token_prefix"))
                    break

        return results

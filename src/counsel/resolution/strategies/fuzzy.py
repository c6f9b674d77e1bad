"""
Fuzzy strategies: edit distance and phonetic codes.

Both absorb OCR and spelling noise that the lexical strategies miss,
and both are weighted lower in fusion accordingly.
"""

from functools import lru_cache
from typing import Optional, Sequence

import jellyfish
import metaphone

from counsel.reference.models import STOPWORDS, CanonicalEntity
from counsel.resolution.models import MatchCandidate, Query
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.resolution.strategies.lexical import entity_names
from counsel.text.variations import comma_head, name_tokens


class LevenshteinStrategy(MatchingStrategy):
    """
    Edit distance between the normalized query and each candidate name.

    Accepts distances up to the threshold; queries shorter than
    SHORT_QUERY characters get a tighter threshold so three-letter
    inputs do not match every three-letter name.
    """

    prior = 0.6

    BASE_SCORE = 60.0
    PER_EDIT = 10.0
    MIN_LENGTH = 3
    SHORT_QUERY = 5

    def __init__(self, threshold: int = 3):
        self.threshold = threshold

    @property
    def name(self) -> str:
        return "levenshtein"

    def applies_to(self, query: Query) -> bool:
        return len(query.normalized) >= self.MIN_LENGTH

    def threshold_for(self, text: str) -> int:
        """Maximum accepted distance for a query of this length."""
        if len(text) < self.SHORT_QUERY:
            return min(self.threshold, (len(text) - 1) // 2)
        return self.threshold

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        text = query.normalized
        if len(text) < self.MIN_LENGTH:
            return []
        limit = self.threshold_for(text)

        results = []
        for entity in candidates:
            best: Optional[int] = None
            for name in entity_names(entity):
                # Distance is at least the length difference
                if abs(len(name) - len(text)) > limit:
                    continue
                distance = jellyfish.levenshtein_distance(text, name)
                if distance <= limit and (best is None or distance < best):
                    best = distance
                    if best == 0:
                        break
            if best is not None:
                score = self.BASE_SCORE - self.PER_EDIT * best
                results.append(self.candidate(entity, score, f"fuzzy:distance={best}"))

        return results


@lru_cache(maxsize=50000)
def soundex_code(token: str) -> str:
    return jellyfish.soundex(token)


@lru_cache(maxsize=50000)
def metaphone_code(token: str) -> str:
    primary, secondary = metaphone.doublemetaphone(token)
    return primary or secondary or token


def phonetic_tokens(text: str) -> list[str]:
    """Alphabetic tokens that carry sound: stopwords and digits dropped."""
    return [
        t for t in name_tokens(text.replace(".", " "))
        if t.isalpha() and t not in STOPWORDS
    ]


class PhoneticStrategy(MatchingStrategy):
    """
    Soundex and Double Metaphone matching.

    A whole-name match compares the per-token code sequence of the query
    with that of the candidate name (or its part before the first comma).
    A weaker token-level match accepts candidates where every query token
    is present either literally or by sound, with at least one misspelt
    token matched by sound.
    """

    prior = 0.6

    METAPHONE_SCORE = 50.0
    SOUNDEX_SCORE = 48.0
    TOKEN_SCORE = 45.0
    MIN_LENGTH = 3
    MIN_TOKEN_LENGTH = 4

    @property
    def name(self) -> str:
        return "phonetic"

    def applies_to(self, query: Query) -> bool:
        return len(query.normalized) >= self.MIN_LENGTH

    @staticmethod
    def _codes(tokens: list[str]) -> tuple[tuple[str, ...], tuple[str, ...]]:
        return (
            tuple(metaphone_code(t) for t in tokens),
            tuple(soundex_code(t) for t in tokens),
        )

    def _token_level(self, query_tokens: list[str], tokens: list[str]) -> bool:
        literal = set(tokens)
        sounds = {metaphone_code(t) for t in tokens} | {soundex_code(t) for t in tokens}
        by_sound = False
        for token in query_tokens:
            if token in literal:
                continue
            if len(token) < self.MIN_TOKEN_LENGTH:
                return False
            if metaphone_code(token) in sounds or soundex_code(token) in sounds:
                by_sound = True
            else:
                return False
        return by_sound

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        query_tokens = phonetic_tokens(query.normalized)
        if not query_tokens or len("".join(query_tokens)) < self.MIN_LENGTH:
            return []
        query_metaphone, query_soundex = self._codes(query_tokens)

        results = []
        for entity in candidates:
            best = None
            for name in {entity.canonical_name, comma_head(entity.canonical_name)}:
                tokens = phonetic_tokens(name)
                if not tokens:
                    continue
                if len(tokens) == len(query_tokens):
                    name_metaphone, name_soundex = self._codes(tokens)
                    if name_metaphone == query_metaphone:
                        best = (self.METAPHONE_SCORE, "phonetic:metaphone")
                        break
                    if name_soundex == query_soundex and best is None:
                        best = (self.SOUNDEX_SCORE, "phonetic:soundex")
                        continue
                if best is None and self._token_level(query_tokens, tokens):
                    best = (self.TOKEN_SCORE, "phonetic:token")
            if best:
                results.append(self.candidate(entity, best[0], best[1]))

        return results

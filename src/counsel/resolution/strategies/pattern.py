"""
Pattern strategies: shell-style wildcards and caller-supplied regexes.

Both only run when the caller explicitly asked for pattern matching.
"""

import logging
import re
from typing import Sequence

import regex

from counsel.reference.models import CanonicalEntity
from counsel.resolution.models import MatchCandidate, Query
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.resolution.strategies.lexical import entity_names

logger = logging.getLogger(__name__)


def wildcard_to_regex(text: str) -> re.Pattern:
    """Translate '*' (any run) and '?' (one character) into an anchored pattern."""
    parts = []
    for char in text:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class WildcardStrategy(MatchingStrategy):
    """Anchored, case-insensitive wildcard match on names and variations."""

    prior = 0.45

    SCORE = 40.0

    @property
    def name(self) -> str:
        return "wildcard"

    def applies_to(self, query: Query) -> bool:
        return query.has_wildcard

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        text = query.wildcard_text
        # A pattern of only wildcards would match everything
        if not text or not text.strip("*? "):
            return []

        compiled = wildcard_to_regex(text)
        return [
            self.candidate(entity, self.SCORE, "wildcard")
            for entity in candidates
            if any(compiled.fullmatch(name) for name in entity_names(entity))
        ]


class RegexStrategy(MatchingStrategy):
    """
    Caller-delimited /pattern/ queries.

    Patterns are evaluated with a timeout so catastrophic backtracking
    cannot stall resolution; invalid or timed-out patterns match nothing.
    """

    prior = 0.4

    SCORE = 35.0

    @property
    def name(self) -> str:
        return "regex"

    def applies_to(self, query: Query) -> bool:
        return query.pattern is not None

    def match(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
    ) -> list[MatchCandidate]:
        if not query.pattern or not query.pattern.strip():
            return []

        try:
            compiled = regex.compile(query.pattern, regex.IGNORECASE)
        except regex.error as e:
            logger.warning(f"Invalid pattern '{query.pattern}': {e}")
            return []

        results = []
        try:
            for entity in candidates:
                if compiled.search(entity.canonical_name, timeout=query.regex_timeout):
                    results.append(self.candidate(entity, self.SCORE, "regex"))
        except TimeoutError:
            logger.warning(
                f"Pattern '{query.pattern}' exceeded {query.regex_timeout * 1000:.0f}ms, "
                f"discarding matches"
            )
            return []

        return results

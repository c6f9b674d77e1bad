"""
Matching strategies.

Each strategy independently scores canonical entities for a query:
- Lexical: Exact, Substring, Token-Prefix
- Fuzzy: Levenshtein, Phonetic (Soundex / Double Metaphone)
- Pattern: Wildcard, Regex
- Semantic: Synonym expansion, Cosine similarity
- Location-Aware: City/state/region boosts for colleges
- Abbreviation-Pattern: Synthesized abbreviation substrings
"""

from typing import Optional

from counsel.reference.tables import DomainTables
from counsel.resolution.strategies.base import MatchingStrategy
from counsel.resolution.strategies.lexical import (
    ExactStrategy,
    SubstringStrategy,
    TokenPrefixStrategy,
)
from counsel.resolution.strategies.fuzzy import LevenshteinStrategy, PhoneticStrategy
from counsel.resolution.strategies.pattern import RegexStrategy, WildcardStrategy
from counsel.resolution.strategies.semantic import CosineStrategy, SynonymStrategy
from counsel.resolution.strategies.location import LocationAwareStrategy
from counsel.resolution.strategies.abbreviation import AbbreviationPatternStrategy


def default_strategies(
    tables: Optional[DomainTables] = None,
    fuzzy_threshold: int = 3,
    similarity_threshold: float = 0.3,
) -> list[MatchingStrategy]:
    """The full strategy set, in dispatch order."""
    tables = tables or DomainTables()
    return [
        ExactStrategy(),
        SubstringStrategy(),
        TokenPrefixStrategy(),
        LevenshteinStrategy(threshold=fuzzy_threshold),
        PhoneticStrategy(),
        WildcardStrategy(),
        RegexStrategy(),
        SynonymStrategy(tables),
        LocationAwareStrategy(tables),
        CosineStrategy(threshold=similarity_threshold),
        AbbreviationPatternStrategy(),
    ]


__all__ = [
    "MatchingStrategy",
    "ExactStrategy",
    "SubstringStrategy",
    "TokenPrefixStrategy",
    "LevenshteinStrategy",
    "PhoneticStrategy",
    "WildcardStrategy",
    "RegexStrategy",
    "SynonymStrategy",
    "LocationAwareStrategy",
    "CosineStrategy",
    "AbbreviationPatternStrategy",
    "default_strategies",
]

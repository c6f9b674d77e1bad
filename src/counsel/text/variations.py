"""
Variation generation for canonical names and queries.

A name can legitimately appear in several surface forms:
- With a trailing address or city fragment after a comma
- With common words contracted (INSTITUTE -> INST) or expanded
- As dotted or spaced initials (A.J. / A J)

Used at load time to expand every canonical entity, and per query to
expand the user's input, so either direction of abbreviation matches.
"""

import re
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from counsel.text.normalizer import TextNormalizer, normalize_text


# Initials are only generated for names this short
MAX_INITIALS_TOKENS = 5

TOKEN_SPLIT = re.compile(r"[\s\-&(),]+")


class WordForm(BaseModel):
    """A long word (or phrase) and the short forms it is written as."""

    model_config = ConfigDict(frozen=True)

    long: str
    short: tuple[str, ...]

    @field_validator("long")
    @classmethod
    def validate_long(cls, v: str) -> str:
        v = normalize_text(v)
        if not v:
            raise ValueError("long form cannot be empty")
        return v

    @field_validator("short")
    @classmethod
    def validate_short(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        forms = tuple(f for f in (normalize_text(s) for s in v) if f)
        if not forms:
            raise ValueError("at least one short form is required")
        return forms


DEFAULT_WORD_FORMS = [
    WordForm(long="INSTITUTE", short=("INST", "INSTT")),
    WordForm(long="COLLEGE", short=("COL", "COLL")),
    WordForm(long="UNIVERSITY", short=("UNIV",)),
    WordForm(long="DR.", short=("DR",)),
    WordForm(long="MEDICAL COLLEGE", short=("MC",)),
    WordForm(long="DENTAL COLLEGE", short=("DC",)),
    WordForm(long="HOSPITAL", short=("HOSP",)),
    WordForm(long="GOVERNMENT", short=("GOVT",)),
    WordForm(long="MEDICAL", short=("MED",)),
    WordForm(long="SCIENCES", short=("SCI",)),
    WordForm(long="TECHNOLOGY", short=("TECH",)),
    WordForm(long="RESEARCH", short=("RES",)),
    WordForm(long="CENTRE", short=("CTR",)),
]


def _word_pattern(word: str) -> re.Pattern:
    """Whole-word pattern; a bare word never matches its dotted form."""
    tail = "" if word.endswith(".") else r"(?!\.)"
    return re.compile(rf"(?<![A-Z0-9.]){re.escape(word)}(?![A-Z0-9]){tail}")


def name_tokens(name: str) -> list[str]:
    """Split a normalized name into word tokens."""
    return [t for t in TOKEN_SPLIT.split(name) if t]


def initials_of(name: str) -> Optional[tuple[str, str]]:
    """
    Dot-joined and space-joined initials for a multi-token name.

    Returns None for single-token names and for names longer than
    MAX_INITIALS_TOKENS tokens.
    """
    tokens = [t for t in name_tokens(name.replace(".", " ")) if t[0].isalnum()]
    if not 2 <= len(tokens) <= MAX_INITIALS_TOKENS:
        return None
    letters = [t[0] for t in tokens]
    return ".".join(letters) + ".", " ".join(letters)


def comma_head(name: str) -> str:
    """Text before the first comma, used to drop trailing locations."""
    return name.split(",", 1)[0].strip()


def comma_tail(name: str) -> str:
    """Text after the last comma, or '' when there is none."""
    if "," not in name:
        return ""
    return name.rsplit(",", 1)[1].strip()


class VariationGenerator:
    """Derives the self-consistent set of forms a name may appear as."""

    def __init__(
        self,
        word_forms: Optional[Iterable[WordForm]] = None,
        normalizer: Optional[TextNormalizer] = None,
    ):
        self.word_forms = tuple(DEFAULT_WORD_FORMS if word_forms is None else word_forms)
        self.normalizer = normalizer or TextNormalizer()
        self._patterns = [
            (form, _word_pattern(form.long), [(s, _word_pattern(s)) for s in form.short])
            for form in self.word_forms
        ]

    def _word_form_variants(self, text: str) -> set[str]:
        variants = set()
        contracted = text
        expanded = text

        for form, long_pattern, short_patterns in self._patterns:
            if long_pattern.search(text):
                for short, _ in short_patterns:
                    variants.add(long_pattern.sub(short, text))
            for short, short_pattern in short_patterns:
                if short_pattern.search(text):
                    variants.add(short_pattern.sub(form.long, text))

            # Apply every pair together for the fully contracted/expanded forms
            contracted = long_pattern.sub(form.short[0], contracted)
            for _, short_pattern in short_patterns:
                expanded = short_pattern.sub(form.long, expanded)

        variants.add(contracted)
        variants.add(expanded)
        return variants

    def variations_of(self, name: str, include_initials: bool = True) -> frozenset[str]:
        """
        Generate all normalized variations of a name.

        Args:
            name: Raw or normalized name
            include_initials: Add dotted/spaced initials forms. Query
                expansion disables this so long queries do not match
                unrelated names through their initials.

        Returns:
            Frozen set of normalized forms, always containing the
            normalized name itself (empty if the name normalizes to '').
        """
        base = self.normalizer.normalize(name)
        if not base:
            return frozenset()

        forms = {base}
        head = comma_head(base)
        if head:
            forms.add(head)

        for form in list(forms):
            forms |= self._word_form_variants(form)

        if include_initials:
            for form in {base, head}:
                initials = initials_of(form) if form else None
                if initials:
                    forms.update(initials)

        normalized = {self.normalizer.normalize(f) for f in forms}
        normalized.discard("")
        return frozenset(normalized)

"""
Abbreviation detection and pattern synthesis.

An abbreviation query ("SKS", "A J", "A.J.", "AIIMS") is split into
units, and the exact substrings a legitimate abbreviation of those
units could appear as are synthesized. Matching is done on a
dot-stripped copy of the name so "A.J." and "A J" compare equal.
"""

import re
from typing import Container, Optional

from counsel.text.normalizer import WHITESPACE


ABBREVIATION_CHARS = re.compile(r"^[A-Z. ]+$")

# Single-token abbreviations split into letters up to this length
MAX_SPLIT_LETTERS = 3
MAX_WORD_ABBREVIATION = 8
MAX_UNIT_LETTERS = 2


def strip_dots(text: str) -> str:
    """Replace dots with spaces and collapse whitespace."""
    return WHITESPACE.sub(" ", text.replace(".", " ")).strip()


def abbreviation_units(
    normalized: str,
    raw: Optional[str] = None,
    known_words: Container[str] = (),
) -> Optional[tuple[str, ...]]:
    """
    Split a normalized query into abbreviation units.

    - 2-3 tokens of 1-2 letters each: the tokens ("A J", "S K S", "A.J.")
    - One token of 2-3 letters: its letters ("SKS" -> S, K, S)
    - One token of 4-8 letters typed without lowercase: the token ("AIIMS"),
      unless it is a known word such as a city name ("PUNE")

    Args:
        normalized: Normalized query text
        raw: Raw query text, used to tell "AIIMS" from "Pune"
        known_words: Words that are never treated as abbreviations

    Returns:
        Units, or None if the query does not look like an abbreviation
    """
    if not normalized or not ABBREVIATION_CHARS.match(normalized):
        return None

    tokens = strip_dots(normalized).split()
    if 2 <= len(tokens) <= 3:
        if all(1 <= len(t) <= MAX_UNIT_LETTERS for t in tokens):
            return tuple(tokens)
        return None

    if len(tokens) != 1 or "." in normalized:
        return None

    word = tokens[0]
    if 2 <= len(word) <= MAX_SPLIT_LETTERS:
        return tuple(word)
    if MAX_SPLIT_LETTERS < len(word) <= MAX_WORD_ABBREVIATION:
        if raw is not None and any(c.islower() for c in raw):
            return None
        if word in known_words:
            return None
        return (word,)
    return None


def abbreviation_patterns(units: tuple[str, ...]) -> tuple[str, ...]:
    """
    Synthesize the surface forms an abbreviation of these units takes.

    For n units: dot-separated, space-separated and concatenated forms;
    for three units also the two overlapping bigram forms ("SK S", "S KS").
    """
    if not units:
        return ()
    if len(units) == 1:
        return (units[0],)

    patterns = [
        ".".join(units) + ".",
        " ".join(units),
        "".join(units),
    ]
    if len(units) == 3:
        a, b, c = units
        patterns.append(f"{a}{b} {c}")
        patterns.append(f"{a} {b}{c}")
    return tuple(dict.fromkeys(patterns))


def find_pattern(pattern: str, stripped_name: str) -> int:
    """
    Position of a pattern in a dot-stripped name, or -1.

    The pattern must sit on token boundaries, so "SKS" is found in
    "SKS HOSPITAL" but not in "TASKS".
    """
    key = strip_dots(pattern)
    if not key:
        return -1
    match = re.search(rf"(?<![A-Z0-9]){re.escape(key)}(?![A-Z0-9])", stripped_name)
    return match.start() if match else -1


def concatenated_initials(stripped_name: str, skip: Container[str] = ()) -> str:
    """
    First letter of every token: "M S RAMAIAH MEDICAL COLLEGE" -> "MSRMC".

    Tokens in skip (e.g. OF, AND) contribute no letter, so
    "ALL INDIA INSTITUTE OF MEDICAL SCIENCES" gives "AIIMS".
    """
    return "".join(
        t[0] for t in re.split(r"[\s\-&(),]+", stripped_name)
        if t and t[0].isalnum() and t not in skip
    )

"""Text normalization and name variation utilities for OCR-extracted fields."""

from counsel.text.normalizer import (
    TextNormalizer,
    OCRRule,
    normalize_text,
    DEFAULT_OCR_RULES,
)
from counsel.text.abbreviations import (
    abbreviation_units,
    abbreviation_patterns,
    strip_dots,
)
from counsel.text.variations import (
    VariationGenerator,
    WordForm,
    initials_of,
    comma_head,
    comma_tail,
    name_tokens,
    DEFAULT_WORD_FORMS,
)

__all__ = [
    # Normalization
    "TextNormalizer",
    "OCRRule",
    "normalize_text",
    "DEFAULT_OCR_RULES",
    # Abbreviations
    "abbreviation_units",
    "abbreviation_patterns",
    "strip_dots",
    # Variations
    "VariationGenerator",
    "WordForm",
    "initials_of",
    "comma_head",
    "comma_tail",
    "name_tokens",
    "DEFAULT_WORD_FORMS",
]

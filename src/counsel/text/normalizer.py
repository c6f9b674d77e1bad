"""
Text normalization for OCR-extracted counselling fields.

Canonicalizes raw strings before any matching:
- Case folding to uppercase
- Whitespace and comma spacing cleanup
- Removal of characters outside the allowed set
- Ordered OCR-correction substitutions, applied to a fixed point
"""

import re
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


# Characters that survive normalization
ALLOWED_CHARS = re.compile(r"^[A-Z0-9 .\-&(),]*$")
DISALLOWED_CHARS = re.compile(r"[^A-Z0-9 .\-&(),]")

WHITESPACE = re.compile(r"\s+")
COMMA_RUN = re.compile(r"\s*,[\s,]*")

# Safety cap for repeated substitution passes
MAX_CORRECTION_PASSES = 10


class OCRRule(BaseModel):
    """A single OCR-correction substitution."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    replacement: str
    mode: Literal["token", "substring"] = "token"

    @field_validator("pattern", "replacement")
    @classmethod
    def validate_charset(cls, v: str) -> str:
        v = WHITESPACE.sub(" ", v.upper())
        if not ALLOWED_CHARS.match(v):
            raise ValueError(f"'{v}' contains characters removed by normalization")
        return v

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("pattern cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_terminates(self) -> "OCRRule":
        """A replacement that re-creates its own pattern would never settle."""
        if self.pattern in self.replacement:
            raise ValueError(
                f"replacement '{self.replacement}' contains its own pattern '{self.pattern}'"
            )
        return self


# Known OCR misreads from scanned counselling spreadsheets
DEFAULT_OCR_RULES = [
    OCRRule(pattern="PGIMER,", replacement="PGIMER"),
    OCRRule(pattern="MDAL", replacement="MEDICAL"),
    OCRRule(pattern="MDINE", replacement="MEDICINE"),
    OCRRule(pattern="AHMDAD", replacement="AHMEDABAD"),
    OCRRule(pattern="CANNAUGHT", replacement="CONNAUGHT"),
    OCRRule(pattern="RADIO- DIAGNOSIS", replacement="RADIODIAGNOSIS", mode="substring"),
    OCRRule(pattern="RADIO-DIAGNOSIS", replacement="RADIODIAGNOSIS"),
    OCRRule(pattern="OBST. AND GYNAE", replacement="OBSTETRICS AND GYNAECOLOGY"),
    OCRRule(pattern="DELHI (NCT)", replacement="DELHI"),
    OCRRule(pattern="CHENNAI-03", replacement="CHENNAI"),
]


class TextNormalizer:
    """
    Deterministic, total string normalizer.

    normalize() never raises and is idempotent: the correction table is
    applied until no rule fires, and rules that could re-trigger
    themselves are rejected when the table is built.
    """

    def __init__(self, rules: Optional[Iterable[OCRRule]] = None):
        self.rules = tuple(DEFAULT_OCR_RULES if rules is None else rules)
        self._compiled = [self._compile(rule) for rule in self.rules]

    @staticmethod
    def _compile(rule: OCRRule):
        if rule.mode == "substring":
            return None
        return re.compile(rf"(?<![A-Z0-9]){re.escape(rule.pattern)}(?![A-Z0-9])")

    @staticmethod
    def clean(text: str) -> str:
        """Case, charset and spacing cleanup without OCR corrections."""
        text = WHITESPACE.sub(" ", text.upper())
        text = DISALLOWED_CHARS.sub("", text)
        text = WHITESPACE.sub(" ", text)
        text = COMMA_RUN.sub(", ", text)
        return text.strip(" ,")

    def _apply_once(self, text: str) -> str:
        for rule, compiled in zip(self.rules, self._compiled):
            if compiled is None:
                text = text.replace(rule.pattern, rule.replacement)
            else:
                text = compiled.sub(rule.replacement, text)
        return text

    def normalize(self, raw) -> str:
        """Normalize a raw field value. Non-strings normalize to ''."""
        if not isinstance(raw, str):
            return ""

        text = self.clean(raw)
        for _ in range(MAX_CORRECTION_PASSES):
            corrected = self._apply_once(text)
            if corrected == text:
                break
            text = self.clean(corrected)

        return text


_default_normalizer = TextNormalizer()


def normalize_text(raw) -> str:
    """Normalize using the default OCR-correction table."""
    return _default_normalizer.normalize(raw)

"""
Domain lookup tables used by normalization and matching.

All tables are configuration data, loaded once and never mutated:
- OCR-correction rules (ordered)
- Word-form abbreviation pairs
- Synonym groups (degrees, institutions, city name variants, specialties)
- Cities with their state and alternate names, and state-to-region mapping

Defaults ship with the package; a JSON file can override any table.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from counsel.exceptions import DomainTableError
from counsel.reference.models import Location
from counsel.text.normalizer import DEFAULT_OCR_RULES, OCRRule, normalize_text
from counsel.text.variations import DEFAULT_WORD_FORMS, WordForm

logger = logging.getLogger(__name__)


# Each group lists interchangeable phrases
DEFAULT_SYNONYM_GROUPS = [
    # Degrees
    ["MBBS", "BACHELOR OF MEDICINE", "BACHELOR OF SURGERY", "MEDICAL DEGREE"],
    ["MD", "DOCTOR OF MEDICINE", "MEDICAL DOCTOR"],
    ["MS", "MASTER OF SURGERY", "SURGICAL DEGREE"],
    ["MDS", "MASTER OF DENTAL SURGERY"],
    ["BDS", "BACHELOR OF DENTAL SURGERY", "DENTAL DEGREE"],
    ["DNB", "DIPLOMATE OF NATIONAL BOARD", "NATIONAL BOARD"],
    # Institutions and management types
    ["AIIMS", "ALL INDIA INSTITUTE OF MEDICAL SCIENCES"],
    ["JIPMER", "JAWAHARLAL INSTITUTE OF POSTGRADUATE MEDICAL EDUCATION AND RESEARCH"],
    ["PGIMER", "POSTGRADUATE INSTITUTE OF MEDICAL EDUCATION AND RESEARCH"],
    ["GOVT", "GOVERNMENT", "GOV"],
    ["PVT", "PRIVATE"],
    ["DEEMED", "DEEMED UNIVERSITY", "DEEMED TO BE UNIVERSITY"],
    # Cities
    ["DELHI", "NEW DELHI", "DILLI"],
    ["MUMBAI", "BOMBAY"],
    ["KOLKATA", "CALCUTTA"],
    ["CHENNAI", "MADRAS"],
    ["BANGALORE", "BENGALURU"],
    ["HYDERABAD", "SECUNDERABAD"],
    ["GURGAON", "GURUGRAM"],
    ["VADODARA", "BARODA"],
    ["VISAKHAPATNAM", "VIZAG"],
    ["KANPUR", "CAWNPORE"],
    # Specialties
    ["PAEDIATRICS", "PEDIATRICS"],
    ["GYNAECOLOGY", "GYNECOLOGY"],
    ["ANAESTHESIOLOGY", "ANESTHESIOLOGY", "ANAESTHESIA"],
    ["ORTHOPAEDICS", "ORTHOPEDICS", "ORTHO"],
    ["DERMATOLOGY", "DERMA"],
    ["RADIODIAGNOSIS", "RADIOLOGY"],
]


DEFAULT_STATE_REGIONS = {
    "DELHI": "NORTH",
    "CHANDIGARH": "NORTH",
    "PUNJAB": "NORTH",
    "HARYANA": "NORTH",
    "HIMACHAL PRADESH": "NORTH",
    "JAMMU AND KASHMIR": "NORTH",
    "LADAKH": "NORTH",
    "UTTARAKHAND": "NORTH",
    "UTTAR PRADESH": "NORTH",
    "RAJASTHAN": "NORTH",
    "MAHARASHTRA": "WEST",
    "GUJARAT": "WEST",
    "GOA": "WEST",
    "DADRA AND NAGAR HAVELI AND DAMAN AND DIU": "WEST",
    "KARNATAKA": "SOUTH",
    "TAMIL NADU": "SOUTH",
    "KERALA": "SOUTH",
    "ANDHRA PRADESH": "SOUTH",
    "TELANGANA": "SOUTH",
    "PUDUCHERRY": "SOUTH",
    "WEST BENGAL": "EAST",
    "ODISHA": "EAST",
    "BIHAR": "EAST",
    "JHARKHAND": "EAST",
    "ANDAMAN AND NICOBAR ISLANDS": "EAST",
    "MADHYA PRADESH": "CENTRAL",
    "CHHATTISGARH": "CENTRAL",
    "ASSAM": "NORTH-EAST",
    "MEGHALAYA": "NORTH-EAST",
    "MANIPUR": "NORTH-EAST",
    "MIZORAM": "NORTH-EAST",
    "NAGALAND": "NORTH-EAST",
    "TRIPURA": "NORTH-EAST",
    "ARUNACHAL PRADESH": "NORTH-EAST",
    "SIKKIM": "NORTH-EAST",
}


class CityEntry(BaseModel):
    """State and alternate spellings of a city."""

    model_config = ConfigDict(frozen=True)

    state: str
    aliases: tuple[str, ...] = ()

    @field_validator("state")
    @classmethod
    def validate_state(cls, v: str) -> str:
        v = normalize_text(v)
        if not v:
            raise ValueError("city state cannot be empty")
        return v

    @field_validator("aliases")
    @classmethod
    def validate_aliases(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(a for a in (normalize_text(x) for x in v) if a)


DEFAULT_CITIES = {
    "DELHI": CityEntry(state="DELHI", aliases=("NEW DELHI", "DILLI", "DELHI NCR", "NCR")),
    "CHANDIGARH": CityEntry(state="CHANDIGARH"),
    "AMRITSAR": CityEntry(state="PUNJAB"),
    "LUDHIANA": CityEntry(state="PUNJAB"),
    "ROHTAK": CityEntry(state="HARYANA"),
    "GURGAON": CityEntry(state="HARYANA", aliases=("GURUGRAM",)),
    "FARIDABAD": CityEntry(state="HARYANA"),
    "SHIMLA": CityEntry(state="HIMACHAL PRADESH"),
    "SRINAGAR": CityEntry(state="JAMMU AND KASHMIR"),
    "JAMMU": CityEntry(state="JAMMU AND KASHMIR"),
    "DEHRADUN": CityEntry(state="UTTARAKHAND"),
    "RISHIKESH": CityEntry(state="UTTARAKHAND"),
    "LUCKNOW": CityEntry(state="UTTAR PRADESH"),
    "KANPUR": CityEntry(state="UTTAR PRADESH", aliases=("CAWNPORE",)),
    "AGRA": CityEntry(state="UTTAR PRADESH"),
    "VARANASI": CityEntry(state="UTTAR PRADESH", aliases=("BANARAS",)),
    "MEERUT": CityEntry(state="UTTAR PRADESH"),
    "GHAZIABAD": CityEntry(state="UTTAR PRADESH"),
    "NOIDA": CityEntry(state="UTTAR PRADESH"),
    "ALIGARH": CityEntry(state="UTTAR PRADESH"),
    "JAIPUR": CityEntry(state="RAJASTHAN"),
    "JODHPUR": CityEntry(state="RAJASTHAN"),
    "UDAIPUR": CityEntry(state="RAJASTHAN"),
    "KOTA": CityEntry(state="RAJASTHAN"),
    "BIKANER": CityEntry(state="RAJASTHAN"),
    "MUMBAI": CityEntry(state="MAHARASHTRA", aliases=("BOMBAY",)),
    "PUNE": CityEntry(state="MAHARASHTRA", aliases=("PUNA",)),
    "NAGPUR": CityEntry(state="MAHARASHTRA"),
    "NASHIK": CityEntry(state="MAHARASHTRA"),
    "AURANGABAD": CityEntry(state="MAHARASHTRA"),
    "THANE": CityEntry(state="MAHARASHTRA"),
    "AHMEDABAD": CityEntry(state="GUJARAT", aliases=("AHMEDBAD",)),
    "SURAT": CityEntry(state="GUJARAT"),
    "VADODARA": CityEntry(state="GUJARAT", aliases=("BARODA",)),
    "RAJKOT": CityEntry(state="GUJARAT"),
    "PANAJI": CityEntry(state="GOA"),
    "BANGALORE": CityEntry(state="KARNATAKA", aliases=("BENGALURU", "BANGALURU")),
    "MYSORE": CityEntry(state="KARNATAKA", aliases=("MYSURU",)),
    "MANGALORE": CityEntry(state="KARNATAKA", aliases=("MANGALURU",)),
    "HUBLI": CityEntry(state="KARNATAKA"),
    "BELGAUM": CityEntry(state="KARNATAKA", aliases=("BELAGAVI",)),
    "CHENNAI": CityEntry(state="TAMIL NADU", aliases=("MADRAS",)),
    "COIMBATORE": CityEntry(state="TAMIL NADU"),
    "MADURAI": CityEntry(state="TAMIL NADU"),
    "VELLORE": CityEntry(state="TAMIL NADU"),
    "THIRUVANANTHAPURAM": CityEntry(state="KERALA", aliases=("TRIVANDRUM",)),
    "KOCHI": CityEntry(state="KERALA", aliases=("COCHIN",)),
    "KOZHIKODE": CityEntry(state="KERALA", aliases=("CALICUT",)),
    "THRISSUR": CityEntry(state="KERALA"),
    "HYDERABAD": CityEntry(state="TELANGANA", aliases=("SECUNDERABAD",)),
    "WARANGAL": CityEntry(state="TELANGANA"),
    "VISAKHAPATNAM": CityEntry(state="ANDHRA PRADESH", aliases=("VIZAG",)),
    "VIJAYAWADA": CityEntry(state="ANDHRA PRADESH"),
    "GUNTUR": CityEntry(state="ANDHRA PRADESH"),
    "TIRUPATI": CityEntry(state="ANDHRA PRADESH"),
    "PUDUCHERRY": CityEntry(state="PUDUCHERRY", aliases=("PONDICHERRY",)),
    "KOLKATA": CityEntry(state="WEST BENGAL", aliases=("CALCUTTA",)),
    "BHUBANESWAR": CityEntry(state="ODISHA"),
    "CUTTACK": CityEntry(state="ODISHA"),
    "PATNA": CityEntry(state="BIHAR"),
    "RANCHI": CityEntry(state="JHARKHAND"),
    "BHOPAL": CityEntry(state="MADHYA PRADESH"),
    "INDORE": CityEntry(state="MADHYA PRADESH"),
    "JABALPUR": CityEntry(state="MADHYA PRADESH"),
    "GWALIOR": CityEntry(state="MADHYA PRADESH"),
    "RAIPUR": CityEntry(state="CHHATTISGARH"),
    "GUWAHATI": CityEntry(state="ASSAM"),
    "SHILLONG": CityEntry(state="MEGHALAYA"),
    "IMPHAL": CityEntry(state="MANIPUR"),
    "AGARTALA": CityEntry(state="TRIPURA"),
    "GANGTOK": CityEntry(state="SIKKIM"),
}


class DomainTables(BaseModel):
    """
    Immutable set of lookup tables injected into the resolution engine.

    Lookup indexes are built once after validation and are read-only.
    """

    model_config = ConfigDict(frozen=True)

    ocr_rules: list[OCRRule] = Field(default_factory=lambda: list(DEFAULT_OCR_RULES))
    word_forms: list[WordForm] = Field(default_factory=lambda: list(DEFAULT_WORD_FORMS))
    synonym_groups: list[list[str]] = Field(
        default_factory=lambda: [list(g) for g in DEFAULT_SYNONYM_GROUPS]
    )
    cities: dict[str, CityEntry] = Field(default_factory=lambda: dict(DEFAULT_CITIES))
    state_regions: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_STATE_REGIONS)
    )

    _synonyms: dict[str, frozenset[str]] = PrivateAttr(default_factory=dict)
    _city_names: dict[str, str] = PrivateAttr(default_factory=dict)
    _regions: frozenset[str] = PrivateAttr(default_factory=frozenset)

    @field_validator("synonym_groups")
    @classmethod
    def validate_synonym_groups(cls, v: list[list[str]]) -> list[list[str]]:
        groups = []
        for group in v:
            phrases = [p for p in dict.fromkeys(normalize_text(x) for x in group) if p]
            if len(phrases) < 2:
                raise ValueError(f"synonym group {group!r} needs at least two phrases")
            groups.append(phrases)
        return groups

    @field_validator("cities", "state_regions", mode="before")
    @classmethod
    def normalize_keys(cls, v):
        if not isinstance(v, dict):
            return v
        return {normalize_text(k): val for k, val in v.items()}

    @field_validator("state_regions")
    @classmethod
    def normalize_regions(cls, v: dict[str, str]) -> dict[str, str]:
        return {k: normalize_text(r) for k, r in v.items() if k}

    @model_validator(mode="after")
    def validate_rules(self) -> "DomainTables":
        """Reject OCR rules that undo each other and cities with unknown states."""
        for rule in self.ocr_rules:
            for other in self.ocr_rules:
                if other is not rule and rule.pattern in other.replacement and other.pattern in rule.replacement:
                    raise ValueError(
                        f"OCR rules '{rule.pattern}' and '{other.pattern}' rewrite each other"
                    )
        for city, entry in self.cities.items():
            if entry.state not in self.state_regions:
                raise ValueError(f"city '{city}' refers to unknown state '{entry.state}'")
        return self

    def model_post_init(self, __context) -> None:
        synonyms: dict[str, set[str]] = {}
        for group in self.synonym_groups:
            for phrase in group:
                synonyms.setdefault(phrase, set()).update(p for p in group if p != phrase)
        self._synonyms = {k: frozenset(v) for k, v in synonyms.items()}

        city_names = {}
        for city, entry in self.cities.items():
            city_names[city] = city
            for alias in entry.aliases:
                city_names.setdefault(alias, city)
        self._city_names = city_names
        self._regions = frozenset(self.state_regions.values())

    @property
    def max_synonym_tokens(self) -> int:
        """Longest synonym phrase key, in tokens."""
        return max((len(k.split()) for k in self._synonyms), default=0)

    @property
    def place_words(self) -> frozenset[str]:
        """Single-word city, state and region names."""
        names = set(self._city_names) | set(self.state_regions) | set(self._regions)
        return frozenset(n for n in names if " " not in n)

    def synonyms_for(self, phrase: str) -> frozenset[str]:
        """Alternatives for a normalized phrase (excluding the phrase itself)."""
        return self._synonyms.get(phrase, frozenset())

    def canonical_city(self, name: str) -> Optional[str]:
        """Canonical city for a city name or alias."""
        return self._city_names.get(name)

    def region_of(self, state: Optional[str]) -> Optional[str]:
        if not state:
            return None
        return self.state_regions.get(state)

    def complete_location(self, location: Location) -> Location:
        """Fill in missing state and region from the city and state tables."""
        city = self.canonical_city(location.city) if location.city else None
        city = city or location.city
        state = location.state
        if not state and city in self.cities:
            state = self.cities[city].state
        region = location.region or self.region_of(state)
        return Location(state=state, city=city, region=region)

    def resolve_location(self, text: str) -> Optional[Location]:
        """
        Interpret a normalized text fragment as a city, state or region.

        Returns None if the fragment names no known place.
        """
        text = normalize_text(text)
        if not text:
            return None

        city = self.canonical_city(text)
        if city:
            return self.complete_location(Location(city=city))
        if text in self.state_regions:
            return Location(state=text, region=self.state_regions[text])
        if text in self._regions:
            return Location(region=text)
        return None


def load_domain_tables(path: Union[str, Path]) -> DomainTables:
    """
    Load domain tables from a JSON file.

    Keys missing from the file keep their defaults.

    Raises:
        DomainTableError: If the file is missing, malformed or invalid
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise DomainTableError(f"Cannot read domain tables from {path}: {e}") from e

    if not isinstance(data, dict):
        raise DomainTableError(f"Domain tables in {path} must be a JSON object")

    try:
        tables = DomainTables.model_validate(data)
    except ValidationError as e:
        raise DomainTableError(f"Invalid domain tables in {path}: {e}") from e

    logger.info(
        f"Loaded domain tables from {path}: {len(tables.ocr_rules)} OCR rules, "
        f"{len(tables.synonym_groups)} synonym groups, {len(tables.cities)} cities"
    )
    return tables

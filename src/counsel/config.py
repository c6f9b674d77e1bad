"""
Counsel configuration management using pydantic-settings.

Values are read from COUNSEL_* environment variables or a .env file.
The resolution engine never reads these directly; callers build a
ResolutionConfig from them so the engine stays explicitly configured.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COUNSEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    log_level: str = Field(default="INFO", description="Logging level")

    # Reference data
    reference_data_path: Optional[Path] = Field(
        default=None,
        description="JSON file with canonical colleges, programs, quotas, categories and states",
    )
    domain_tables_path: Optional[Path] = Field(
        default=None,
        description="JSON file overriding OCR, synonym, word-form and location tables",
    )

    # Orchestration
    strategy_timeout_ms: int = Field(
        default=200, description="Timeout for a single matching strategy"
    )
    resolve_deadline_ms: int = Field(
        default=1000, description="Overall deadline for one resolution call"
    )

    # Matching
    fuzzy_threshold: int = Field(
        default=3, description="Maximum edit distance for fuzzy matches"
    )
    similarity_threshold: float = Field(
        default=0.3, description="Minimum cosine similarity for vector matches"
    )
    regex_timeout_ms: int = Field(
        default=50, description="Evaluation timeout for caller-supplied patterns"
    )

    # Cache
    cache_ttl_seconds: float = Field(
        default=300.0, description="Lifetime of cached resolution results"
    )
    cache_max_entries: int = Field(
        default=100, description="Maximum number of cached resolution results"
    )

    # Search
    default_search_limit: int = Field(
        default=10, description="Default number of search results"
    )

    @field_validator(
        "strategy_timeout_ms",
        "resolve_deadline_ms",
        "regex_timeout_ms",
        "cache_max_entries",
        "default_search_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Timeouts, pool sizes and limits must be positive."""
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("fuzzy_threshold")
    @classmethod
    def validate_fuzzy_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("fuzzy_threshold cannot be negative")
        return v

    @field_validator("similarity_threshold")
    @classmethod
    def validate_similarity(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> "Settings":
        """A single strategy cannot be allowed longer than the whole call."""
        if self.strategy_timeout_ms > self.resolve_deadline_ms:
            raise ValueError(
                "STRATEGY_TIMEOUT_MS must not exceed RESOLVE_DEADLINE_MS"
            )
        return self


# Global settings instance
settings = Settings()

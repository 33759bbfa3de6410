"""
Configuration management for the correction engine.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Missing required fields
    will raise clear validation errors.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Grading Model API Configuration
    # ==========================================================================
    grader_api_key: str = Field(
        ...,
        description="API key for the grading model (OpenAI-compatible endpoint)",
        min_length=10,
    )

    grader_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai",
        description="Base URL for the grading model API",
    )

    grader_model: str = Field(
        default="gemini-2.0-flash",
        description="Model used to grade discursive answers and essays",
    )

    grader_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Temperature for discursive grading",
    )

    essay_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Temperature for essay grading",
    )

    grader_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Upper bound on a single grading request",
    )

    grader_max_tokens: int = Field(
        default=4096,
        ge=256,
        description="Maximum tokens in a grading response",
    )

    # ==========================================================================
    # Scoring Configuration
    # ==========================================================================
    default_rigor: float = Field(
        default=0.45,
        ge=0.0,
        le=1.0,
        description="Rigor used for model grading when the caller gives none",
    )

    default_total_points: Decimal = Field(
        default=Decimal("100"),
        gt=0,
        description="Point scale used when an exam does not set total_points",
    )

    # ==========================================================================
    # Runtime Configuration
    # ==========================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level for the CLI",
    )

    store_path: Path = Field(
        default=Path("./correction_state.json"),
        description="JSON state file used by the CLI",
    )

    @field_validator("grader_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()

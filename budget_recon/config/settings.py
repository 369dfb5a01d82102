"""
Configuration Management for Budget Reconciliation

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engines never read settings themselves; the orchestrator turns them
into MatchingTolerances / ScoringWeights and passes those explicitly.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from budget_recon.models.reconciliation import MatchingTolerances, ScoringWeights


class MatchingSettings(BaseSettings):
    """Reconciliation tolerances and scoring weights."""

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="Maximum days between scheduled and posted date"
    )
    amount_tolerance_percent: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        le=1,
        description="Allowed amount variance as a fraction of the expected amount"
    )
    amount_tolerance_absolute: Decimal = Field(
        default=Decimal("10.00"),
        ge=0,
        description="Allowed amount variance in currency units"
    )
    description_similarity_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum description similarity for a candidate"
    )
    auto_match_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Score at or above which a match is auto-linked"
    )

    # Blend weights (must sum to 1.0)
    description_weight: float = Field(default=0.50, ge=0.0, le=1.0)
    amount_weight: float = Field(default=0.30, ge=0.0, le=1.0)
    date_weight: float = Field(default=0.20, ge=0.0, le=1.0)
    exact_match_similarity_floor: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Similarity still accepted when amount and date match exactly"
    )

    @model_validator(mode='after')
    def validate_weights(self) -> 'MatchingSettings':
        total = self.description_weight + self.amount_weight + self.date_weight
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Matching weights must sum to 1.0, got {total:.4f}")
        return self

    def to_tolerances(self) -> MatchingTolerances:
        return MatchingTolerances(
            date_tolerance_days=self.date_tolerance_days,
            amount_tolerance_percent=self.amount_tolerance_percent,
            amount_tolerance_absolute=self.amount_tolerance_absolute,
            description_similarity_threshold=self.description_similarity_threshold,
            auto_match_threshold=self.auto_match_threshold,
        )

    def to_weights(self) -> ScoringWeights:
        return ScoringWeights(
            description_weight=self.description_weight,
            amount_weight=self.amount_weight,
            date_weight=self.date_weight,
            exact_match_similarity_floor=self.exact_match_similarity_floor,
        )


class ProjectionSettings(BaseSettings):
    """Recurrence projection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    past_due_lookback_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="How far back to look for occurrences without a transaction"
    )
    auto_realize_past_due: bool = Field(
        default=False,
        description="Report past-due occurrences for automatic realization"
    )


class DuplicateDetectionSettings(BaseSettings):
    """Duplicate-import detection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DUPLICATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Skip rows that duplicate existing transactions"
    )
    window_days: int = Field(
        default=3,
        ge=0,
        le=30,
        description="Maximum days between the two transactions' dates"
    )
    similarity_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum description similarity for a duplicate"
    )
    max_posting_lag_days: int = Field(
        default=5,
        ge=0,
        le=31,
        description="Longest plausible gap between initiated and posted date"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local logs"
    )
    log_json: bool = Field(
        default=True,
        description="Render local logs as JSON (console output otherwise)"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def matching(self) -> MatchingSettings:
        return MatchingSettings()

    @property
    def projection(self) -> ProjectionSettings:
        return ProjectionSettings()

    @property
    def duplicates(self) -> DuplicateDetectionSettings:
        return DuplicateDetectionSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    {setting_name}_error entry for every failure.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("matching", "projection", "duplicates", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

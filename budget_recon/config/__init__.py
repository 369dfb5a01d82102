"""Configuration package."""

from budget_recon.config.settings import (
    AppSettings,
    DuplicateDetectionSettings,
    MatchingSettings,
    ProjectionSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DuplicateDetectionSettings",
    "MatchingSettings",
    "ProjectionSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]

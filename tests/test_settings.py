"""Tests for environment-driven configuration."""

import pytest
from decimal import Decimal

from pydantic import ValidationError

from budget_recon.config import (
    AppSettings,
    DuplicateDetectionSettings,
    MatchingSettings,
    ProjectionSettings,
    get_settings,
    validate_all_settings,
)


class TestMatchingSettings:
    """Tests for MatchingSettings."""

    def test_defaults(self):
        settings = MatchingSettings()
        tolerances = settings.to_tolerances()
        weights = settings.to_weights()

        assert tolerances.date_tolerance_days == 7
        assert tolerances.amount_tolerance_absolute == Decimal("10.00")
        assert tolerances.auto_match_threshold == 0.85
        assert weights.description_weight == 0.5
        assert weights.exact_match_similarity_floor == 0.3

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("MATCHING_DATE_TOLERANCE_DAYS", "3")
        monkeypatch.setenv("MATCHING_AMOUNT_TOLERANCE_PERCENT", "0.05")

        tolerances = MatchingSettings().to_tolerances()

        assert tolerances.date_tolerance_days == 3
        assert tolerances.amount_tolerance_percent == Decimal("0.05")

    def test_weights_must_sum_to_one(self, monkeypatch):
        monkeypatch.setenv("MATCHING_DATE_WEIGHT", "0.5")
        with pytest.raises(ValidationError):
            MatchingSettings()

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValidationError):
            MatchingSettings(date_tolerance_days=-1)


class TestOtherSettings:
    """Tests for projection, duplicate and app settings."""

    def test_projection_defaults(self):
        settings = ProjectionSettings()
        assert settings.past_due_lookback_days == 30
        assert not settings.auto_realize_past_due

    def test_projection_flag_from_env(self, monkeypatch):
        monkeypatch.setenv("PROJECTION_AUTO_REALIZE_PAST_DUE", "true")
        assert ProjectionSettings().auto_realize_past_due

    def test_duplicate_window_bounds(self):
        with pytest.raises(ValidationError):
            DuplicateDetectionSettings(window_days=31)

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert AppSettings().log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            AppSettings(log_level="chatty")


class TestSettingsContainer:
    """Tests for the root settings container."""

    def test_sub_settings_reflect_environment(self, monkeypatch):
        settings = get_settings()
        monkeypatch.setenv("DUPLICATES_WINDOW_DAYS", "5")
        assert settings.duplicates.window_days == 5

    def test_validate_all_settings(self):
        results = validate_all_settings()
        assert results["matching"]
        assert results["app"]

    def test_validate_all_settings_reports_errors(self, monkeypatch):
        monkeypatch.setenv("MATCHING_AUTO_MATCH_THRESHOLD", "2")
        results = validate_all_settings()
        assert not results["matching"]
        assert "matching_error" in results
        assert results["projection"]

"""Validation package."""

from budget_recon.validation.validator import SeriesValidator

__all__ = ["SeriesValidator"]

"""Import helpers package."""

from budget_recon.imports.duplicates import DuplicateDetector

__all__ = ["DuplicateDetector"]

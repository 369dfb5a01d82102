"""
Validation Models

Output of SeriesValidator. Structural problems are rejected by the
pydantic models themselves; these models report the semantic checks that
run before a series or exception is stored.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from budget_recon.models.series import utc_now


class ValidationIssue(BaseModel):
    """One finding about a series or exception."""

    field: str = Field(
        ...,
        description="Dotted path of the offending field, e.g. 'pattern.day_of_month'"
    )
    issue_type: str = Field(
        ...,
        description="Machine-readable kind: inconsistent, not_scheduled, clamped_day, ..."
    )
    message: str = Field(
        ...,
        description="Human-readable explanation"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Only 'error' blocks the save"
    )


class ValidationResult(BaseModel):
    """Findings for one series or exception."""

    entity_id: UUID = Field(
        ...,
        description="Series or exception the findings are about"
    )
    validated_at: datetime = Field(default_factory=utc_now)
    is_valid: bool = Field(
        ...,
        description="False when at least one finding is an error"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Messages of the warning-level findings"
    )

    @property
    def has_errors(self) -> bool:
        return self.first_error() is not None

    @property
    def error_count(self) -> int:
        return len([i for i in self.issues if i.severity == "error"])

    def first_error(self) -> Optional[ValidationIssue]:
        return next((i for i in self.issues if i.severity == "error"), None)

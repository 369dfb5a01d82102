"""
Series & Exception Validation

DESIGN DECISION: Validation happens in two layers:

LAYER 1 - MODEL VALIDATION (pydantic, at construction):
- Missing pattern fields (a monthly series without a day of month)
- Out-of-range values (interval < 1, day of month 32, month 13)
- End date before start date
- Skipped exceptions carrying overrides
- This catches malformed input before it exists as an object

LAYER 2 - SEMANTIC VALIDATION (this module, before storage):
- Exceptions that do not point at a scheduled occurrence
- Transfers between an account and itself
- Days of month that will be clamped in shorter months
- Series that can never produce an occurrence
- This catches input that is well-formed but wrong or surprising

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the projection engine never re-validates.
"""

import calendar
from typing import Optional, Union

from budget_recon.models.series import (
    Frequency,
    InstanceException,
    RecurringSeries,
    RecurringTransferSeries,
)
from budget_recon.models.validation import ValidationIssue, ValidationResult
from budget_recon.recurrence.dates import first_occurrence, is_occurrence


AnySeries = Union[RecurringSeries, RecurringTransferSeries]


class SeriesValidator:
    """
    Validates series definitions and exceptions before they are saved.

    Stateless; every check reads only its arguments.
    """

    def _schedule_issues(self, series: AnySeries) -> list[ValidationIssue]:
        """Checks shared by regular and transfer series."""
        issues = []
        pattern = series.pattern

        day_of_month = getattr(pattern, "day_of_month", None)
        if pattern.kind == Frequency.YEARLY:
            last_day = calendar.monthrange(2024, pattern.month_of_year)[1]
            month_name = calendar.month_name[pattern.month_of_year]
            if day_of_month > last_day:
                issues.append(ValidationIssue(
                    field="pattern.day_of_month",
                    issue_type="clamped_day",
                    message=(
                        f"{month_name} has no day {day_of_month}; "
                        "occurrences fall on the last day of the month"
                    ),
                    severity="warning",
                ))
            elif pattern.month_of_year == 2 and day_of_month == 29:
                issues.append(ValidationIssue(
                    field="pattern.day_of_month",
                    issue_type="clamped_day",
                    message="February 29 falls on February 28 outside leap years",
                    severity="warning",
                ))
        elif day_of_month is not None and day_of_month > 28:
            issues.append(ValidationIssue(
                field="pattern.day_of_month",
                issue_type="clamped_day",
                message=(
                    f"Day {day_of_month} does not exist in every month; "
                    "shorter months use their last day"
                ),
                severity="warning",
            ))

        anchor = first_occurrence(series)
        if series.end_date is not None and anchor > series.end_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="empty_schedule",
                message=(
                    f"First occurrence ({anchor.isoformat()}) is after the "
                    f"end date ({series.end_date.isoformat()})"
                ),
                severity="error",
            ))
        elif anchor != series.start_date:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="not_scheduled",
                message=(
                    f"Start date is not an occurrence; the first occurrence "
                    f"is {anchor.isoformat()}"
                ),
                severity="info",
            ))

        if not series.is_active:
            issues.append(ValidationIssue(
                field="is_active",
                issue_type="inactive",
                message="Series is inactive and projects no occurrences",
                severity="info",
            ))

        return issues

    def _build_result(self, entity_id, issues: list[ValidationIssue]) -> ValidationResult:
        return ValidationResult(
            entity_id=entity_id,
            is_valid=not any(i.severity == "error" for i in issues),
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    def validate_series(self, series: RecurringSeries) -> ValidationResult:
        """Validate a single-account series."""
        issues = self._schedule_issues(series)

        if series.amount.is_zero:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero; occurrences cannot be told apart by amount",
                severity="warning",
            ))

        return self._build_result(series.id, issues)

    def validate_transfer(self, series: RecurringTransferSeries) -> ValidationResult:
        """Validate a transfer series."""
        issues = self._schedule_issues(series)

        if series.source_account_id == series.destination_account_id:
            issues.append(ValidationIssue(
                field="destination_account_id",
                issue_type="inconsistent",
                message="Source and destination accounts must differ",
                severity="error",
            ))

        if series.amount.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Transfer amount must be greater than zero",
                severity="error",
            ))

        return self._build_result(series.id, issues)

    def validate_exception(
        self,
        series: AnySeries,
        exception: InstanceException,
    ) -> ValidationResult:
        """
        Validate an exception against the series it overrides.

        The original date must be a scheduled occurrence; overrides must
        stay compatible with the series.
        """
        issues = []

        if exception.series_id != series.id:
            issues.append(ValidationIssue(
                field="series_id",
                issue_type="inconsistent",
                message="Exception belongs to a different series",
                severity="error",
            ))

        if not is_occurrence(series, exception.original_date):
            issues.append(ValidationIssue(
                field="original_date",
                issue_type="not_scheduled",
                message=(
                    f"{exception.original_date.isoformat()} is not a scheduled "
                    "occurrence of this series"
                ),
                severity="error",
            ))

        if exception.modified_amount is not None:
            if exception.modified_amount.currency != series.amount.currency:
                issues.append(ValidationIssue(
                    field="modified_amount",
                    issue_type="inconsistent",
                    message=(
                        f"Override currency {exception.modified_amount.currency} "
                        f"differs from series currency {series.amount.currency}"
                    ),
                    severity="error",
                ))
            if (
                isinstance(series, RecurringTransferSeries)
                and exception.modified_amount.amount <= 0
            ):
                issues.append(ValidationIssue(
                    field="modified_amount",
                    issue_type="invalid_value",
                    message="Transfer amount must be greater than zero",
                    severity="error",
                ))

        modified_date = exception.modified_date
        if modified_date is not None:
            if series.end_date is not None and modified_date > series.end_date:
                issues.append(ValidationIssue(
                    field="modified_date",
                    issue_type="suspicious_date",
                    message="Occurrence is moved past the series end date",
                    severity="warning",
                ))
            if modified_date < series.start_date:
                issues.append(ValidationIssue(
                    field="modified_date",
                    issue_type="suspicious_date",
                    message="Occurrence is moved before the series start date",
                    severity="warning",
                ))

        return self._build_result(exception.id, issues)

    def validate(
        self,
        series: AnySeries,
        exception: Optional[InstanceException] = None,
    ) -> ValidationResult:
        """Validate a series, or an exception when one is given."""
        if exception is not None:
            return self.validate_exception(series, exception)
        if isinstance(series, RecurringTransferSeries):
            return self.validate_transfer(series)
        return self.validate_series(series)

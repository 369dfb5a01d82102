"""Tests for the date/recurrence primitives."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from budget_recon.models.series import (
    DailyPattern,
    Frequency,
    Money,
    MonthlyPattern,
    QuarterlyPattern,
    RecurringSeries,
    WeeklyPattern,
    YearlyPattern,
)
from budget_recon.recurrence.dates import (
    add_months,
    clamp_day,
    first_occurrence,
    first_on_or_after,
    is_occurrence,
    occurrences,
    step_forward,
)


def _series(pattern, start_date, end_date=None) -> RecurringSeries:
    return RecurringSeries(
        account_id=uuid4(),
        description="Test",
        amount=Money(amount=Decimal("-10")),
        pattern=pattern,
        start_date=start_date,
        end_date=end_date,
    )


class TestMonthArithmetic:
    """Tests for clamping month arithmetic."""

    def test_clamp_day(self):
        assert clamp_day(2023, 2, 31) == date(2023, 2, 28)
        assert clamp_day(2024, 2, 31) == date(2024, 2, 29)
        assert clamp_day(2024, 4, 15) == date(2024, 4, 15)

    def test_add_months_clamps(self):
        """Test Jan 31 + 1 month lands on the last day of February."""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_restores_day(self):
        """Test that the target day is re-applied after a short month."""
        assert add_months(date(2024, 2, 29), 1, day_of_month=31) == date(2024, 3, 31)

    def test_step_forward_units(self):
        start = date(2024, 1, 31)
        assert step_forward(start, Frequency.DAILY, 3) == date(2024, 2, 3)
        assert step_forward(start, Frequency.WEEKLY) == date(2024, 2, 7)
        assert step_forward(start, Frequency.BIWEEKLY) == date(2024, 2, 14)
        assert step_forward(start, Frequency.QUARTERLY) == date(2024, 4, 30)
        assert step_forward(start, Frequency.YEARLY, 2) == date(2026, 1, 31)

    def test_step_forward_rejects_zero_interval(self):
        with pytest.raises(ValueError):
            step_forward(date(2024, 1, 1), Frequency.DAILY, 0)


class TestFirstOccurrence:
    """Tests for the series anchor."""

    def test_weekly_anchor_moves_to_weekday(self):
        """Test a Friday series starting on a Monday."""
        series = _series(WeeklyPattern(day_of_week=4), date(2024, 1, 1))
        assert first_occurrence(series) == date(2024, 1, 5)

    def test_monthly_anchor_in_next_month(self):
        series = _series(MonthlyPattern(day_of_month=15), date(2024, 1, 20))
        assert first_occurrence(series) == date(2024, 2, 15)

    def test_yearly_anchor_next_year(self):
        series = _series(YearlyPattern(day_of_month=1, month_of_year=3), date(2024, 6, 1))
        assert first_occurrence(series) == date(2025, 3, 1)


class TestOccurrences:
    """Tests for windowed occurrence generation."""

    def test_monthly_day_31_clamps_and_recovers(self):
        """Test Jan 31 → Feb 29 → Mar 31 → Apr 30."""
        series = _series(MonthlyPattern(day_of_month=31), date(2024, 1, 31))
        dates = list(occurrences(series, date(2024, 1, 1), date(2024, 4, 30)))
        assert dates == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_monthly_day_31_non_leap_year(self):
        series = _series(MonthlyPattern(day_of_month=31), date(2025, 1, 31))
        dates = list(occurrences(series, date(2025, 2, 1), date(2025, 2, 28)))
        assert dates == [date(2025, 2, 28)]

    def test_yearly_february_29(self):
        series = _series(YearlyPattern(day_of_month=29, month_of_year=2), date(2024, 1, 1))
        dates = list(occurrences(series, date(2024, 1, 1), date(2028, 12, 31)))
        assert dates == [
            date(2024, 2, 29),
            date(2025, 2, 28),
            date(2026, 2, 28),
            date(2027, 2, 28),
            date(2028, 2, 29),
        ]

    def test_quarterly_interval(self):
        series = _series(QuarterlyPattern(day_of_month=15), date(2024, 1, 20))
        dates = list(occurrences(series, date(2024, 1, 1), date(2024, 12, 31)))
        assert dates == [
            date(2024, 2, 15),
            date(2024, 5, 15),
            date(2024, 8, 15),
            date(2024, 11, 15),
        ]

    def test_window_starting_mid_series(self):
        """Test that a later window lands on the same grid."""
        series = _series(DailyPattern(interval=3), date(2024, 1, 1))
        assert first_on_or_after(series, date(2024, 1, 5)) == date(2024, 1, 7)
        dates = list(occurrences(series, date(2024, 1, 5), date(2024, 1, 13)))
        assert dates == [date(2024, 1, 7), date(2024, 1, 10), date(2024, 1, 13)]

    def test_end_date_bounds_window(self):
        series = _series(
            MonthlyPattern(day_of_month=1),
            date(2024, 1, 1),
            end_date=date(2024, 3, 1),
        )
        dates = list(occurrences(series, date(2024, 1, 1), date(2024, 12, 31)))
        assert dates == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
        assert first_on_or_after(series, date(2024, 3, 2)) is None

    def test_inverted_window_is_empty(self):
        series = _series(DailyPattern(), date(2024, 1, 1))
        assert list(occurrences(series, date(2024, 2, 1), date(2024, 1, 1))) == []

    def test_window_restart_is_identical(self):
        """Test that projecting the same window twice gives the same dates."""
        series = _series(MonthlyPattern(day_of_month=30), date(2024, 1, 30))
        first = list(occurrences(series, date(2024, 1, 1), date(2024, 12, 31)))
        second = list(occurrences(series, date(2024, 1, 1), date(2024, 12, 31)))
        assert first == second
        assert len(first) == 12

    def test_is_occurrence(self):
        series = _series(MonthlyPattern(day_of_month=15), date(2024, 1, 15))
        assert is_occurrence(series, date(2024, 3, 15))
        assert not is_occurrence(series, date(2024, 3, 16))
        assert not is_occurrence(series, date(2023, 12, 15))

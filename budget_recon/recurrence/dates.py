"""
Date/Recurrence Primitives

Pure calendar arithmetic for recurrence patterns.

Month arithmetic clamps to the last valid day of the target month
(Jan 31 + 1 month = Feb 28/29). The pattern's day of month is re-applied
on every step, so a day-31 series goes Jan 31 → Feb 29 → Mar 31 instead
of drifting to the 29th.
"""

import calendar
from datetime import date, timedelta
from typing import Iterator, Optional, Union

from dateutil.relativedelta import relativedelta

from budget_recon.models.series import (
    Frequency,
    RecurringSeries,
    RecurringTransferSeries,
)


ScheduledSeries = Union[RecurringSeries, RecurringTransferSeries]

_DAYS_PER_STEP = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

_MONTHS_PER_STEP = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, pulling `day` back to the end of a short month."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def add_months(d: date, months: int, day_of_month: Optional[int] = None) -> date:
    """
    Add calendar months to a date.

    The result lands on `day_of_month` (default: the day of `d`), clamped
    to the length of the target month.
    """
    return d + relativedelta(months=months, day=day_of_month or d.day)


def step_forward(
    d: date,
    frequency: Frequency,
    interval: int = 1,
    day_of_month: Optional[int] = None,
) -> date:
    """
    Next candidate date after `d`, ignoring series bounds and exceptions.

    Daily +interval days, Weekly +7×interval days, BiWeekly +14×interval
    days, Monthly +interval months, Quarterly +3×interval months, Yearly
    +12×interval months.
    """
    if interval < 1:
        raise ValueError(f"interval must be >= 1, got {interval}")

    frequency = Frequency(frequency)
    if frequency in _DAYS_PER_STEP:
        return d + timedelta(days=_DAYS_PER_STEP[frequency] * interval)
    return add_months(d, _MONTHS_PER_STEP[frequency] * interval, day_of_month)


def _step(series: ScheduledSeries, d: date) -> date:
    pattern = series.pattern
    return step_forward(
        d,
        pattern.kind,
        pattern.interval,
        getattr(pattern, "day_of_month", None),
    )


def first_occurrence(series: ScheduledSeries) -> date:
    """
    The anchor of a series: the first date on or after start_date that
    matches its pattern.
    """
    pattern = series.pattern
    start = series.start_date
    kind = pattern.kind

    if kind == Frequency.DAILY:
        return start

    if kind in (Frequency.WEEKLY, Frequency.BIWEEKLY):
        return start + timedelta(days=(pattern.day_of_week - start.weekday()) % 7)

    if kind == Frequency.YEARLY:
        candidate = clamp_day(start.year, pattern.month_of_year, pattern.day_of_month)
        if candidate < start:
            candidate = clamp_day(start.year + 1, pattern.month_of_year, pattern.day_of_month)
        return candidate

    # Monthly and quarterly anchor in the start month, or the one after
    candidate = clamp_day(start.year, start.month, pattern.day_of_month)
    if candidate < start:
        candidate = add_months(candidate, 1, pattern.day_of_month)
    return candidate


def first_on_or_after(series: ScheduledSeries, from_date: date) -> Optional[date]:
    """
    Earliest scheduled date >= from_date.

    Never earlier than the series anchor. Returns None when the answer
    would fall after end_date. Computed arithmetically, no day-by-day scan.
    """
    anchor = first_occurrence(series)
    pattern = series.pattern
    kind = pattern.kind

    if from_date <= anchor:
        result = anchor
    elif kind in _DAYS_PER_STEP:
        step_days = _DAYS_PER_STEP[kind] * pattern.interval
        steps = -(-(from_date - anchor).days // step_days)
        result = anchor + timedelta(days=steps * step_days)
    else:
        step_months = _MONTHS_PER_STEP[kind] * pattern.interval
        months_between = (
            (from_date.year - anchor.year) * 12 + from_date.month - anchor.month
        )
        steps = months_between // step_months
        result = add_months(anchor, steps * step_months, pattern.day_of_month)
        while result < from_date:
            steps += 1
            result = add_months(anchor, steps * step_months, pattern.day_of_month)

    if series.end_date is not None and result > series.end_date:
        return None
    return result


def occurrences(
    series: ScheduledSeries,
    window_start: date,
    window_end: date,
) -> Iterator[date]:
    """
    Lazily yield scheduled dates inside [window_start, window_end].

    Bounded by end_date. An inverted window yields nothing.
    """
    if window_end < window_start:
        return

    upper = window_end
    if series.end_date is not None and series.end_date < upper:
        upper = series.end_date

    current = first_on_or_after(series, window_start)
    while current is not None and current <= upper:
        yield current
        current = _step(series, current)


def is_occurrence(series: ScheduledSeries, d: date) -> bool:
    """Whether `d` is one of the series' scheduled dates."""
    return d >= series.start_date and first_on_or_after(series, d) == d

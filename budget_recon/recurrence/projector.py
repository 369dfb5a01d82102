"""
Recurrence Projection Engine

Turns a series definition plus its exception overrides into the dated
occurrences inside a window.

DESIGN DECISION: Projection is pure and lazy. The same inputs always
produce the same sequence, nothing is read from storage or the clock, and
callers can stop iterating at any point. Instances are ordered by their
scheduled date; window membership is also decided by scheduled date, so a
rescheduled occurrence never changes identity.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Mapping, Optional, Union
from uuid import UUID

import structlog

from budget_recon.models.series import (
    InstanceException,
    Money,
    PastDueItem,
    PastDueSummary,
    ProjectedInstance,
    ProjectedTransferInstance,
    RecurringSeries,
    RecurringTransferSeries,
    TransferLeg,
)
from budget_recon.recurrence.dates import occurrences


logger = structlog.get_logger(__name__)

# Caller-supplied keys of occurrences that already have a real transaction.
# Either the scheduled dates alone, or scheduled date → transaction id.
GeneratedKeys = Union[Mapping[date, UUID], Iterable[date]]


def _index_exceptions(
    series_id: UUID,
    exceptions: Iterable[InstanceException],
) -> dict[date, InstanceException]:
    return {e.original_date: e for e in exceptions if e.series_id == series_id}


def _generated_lookup(generated: Optional[GeneratedKeys]) -> dict[date, Optional[UUID]]:
    if generated is None:
        return {}
    if isinstance(generated, Mapping):
        return dict(generated)
    return {d: None for d in generated}


def project_instances(
    series: RecurringSeries,
    exceptions: Iterable[InstanceException],
    window_start: date,
    window_end: date,
    generated: Optional[GeneratedKeys] = None,
) -> Iterator[ProjectedInstance]:
    """
    Lazily yield every occurrence of `series` scheduled in the window.

    Args:
        series: The series to project
        exceptions: Overrides for this series (others are ignored)
        window_start: Inclusive lower bound on scheduled date
        window_end: Inclusive upper bound on scheduled date
        generated: Occurrences that already have a real transaction

    An inactive series or an inverted window yields nothing. Skipped
    occurrences are yielded with is_skipped=True so callers can render them.
    """
    if not series.is_active:
        return

    by_date = _index_exceptions(series.id, exceptions)
    realized = _generated_lookup(generated)

    for scheduled in occurrences(series, window_start, window_end):
        exception = by_date.get(scheduled)
        amount = series.amount
        description = series.description
        effective = scheduled
        is_modified = False
        is_skipped = False

        if exception is not None:
            if exception.is_skipped:
                is_skipped = True
            else:
                is_modified = True
                effective = exception.effective_date
                amount = exception.modified_amount or amount
                description = exception.modified_description or description

        yield ProjectedInstance(
            series_id=series.id,
            account_id=series.account_id,
            category_id=series.category_id,
            scheduled_date=scheduled,
            effective_date=effective,
            amount=amount,
            description=description,
            is_modified=is_modified,
            is_skipped=is_skipped,
            is_generated=scheduled in realized,
            generated_transaction_id=realized.get(scheduled),
            series_created_at=series.created_at,
        )


def find_past_due(
    series: RecurringSeries,
    exceptions: Iterable[InstanceException],
    as_of: date,
    lookback_days: int,
    generated: Optional[GeneratedKeys] = None,
) -> list[ProjectedInstance]:
    """
    Occurrences scheduled in [as_of - lookback_days, as_of) that have no
    transaction yet.

    Skipped occurrences are never past due. An occurrence rescheduled to
    as_of or later is not past due yet.
    """
    if lookback_days < 1:
        return []

    window_start = as_of - timedelta(days=lookback_days)
    window_end = as_of - timedelta(days=1)

    return [
        instance
        for instance in project_instances(
            series, exceptions, window_start, window_end, generated
        )
        if not instance.is_generated
        and not instance.is_skipped
        and instance.effective_date < as_of
    ]


def summarize_past_due(
    instances: Iterable[ProjectedInstance],
    as_of: date,
) -> PastDueSummary:
    """Aggregate past-due occurrences, oldest first."""
    ordered = sorted(
        instances,
        key=lambda i: (i.effective_date, i.series_created_at, i.series_id),
    )
    items = [
        PastDueItem(instance=i, days_past_due=(as_of - i.effective_date).days)
        for i in ordered
    ]

    totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for i in ordered:
        totals[i.amount.currency] += i.amount.amount

    return PastDueSummary(
        as_of=as_of,
        items=items,
        total_count=len(items),
        oldest_date=items[0].instance.effective_date if items else None,
        totals_by_currency=dict(totals),
    )


# =============================================================================
# TRANSFERS
# =============================================================================

def project_transfer_instances(
    series: RecurringTransferSeries,
    exceptions: Iterable[InstanceException],
    window_start: date,
    window_end: date,
    generated: Optional[GeneratedKeys] = None,
) -> Iterator[ProjectedTransferInstance]:
    """
    Lazily yield every occurrence of a transfer series in the window.

    The source leg carries the negated amount, the destination leg the
    positive amount.
    """
    if not series.is_active:
        return

    by_date = _index_exceptions(series.id, exceptions)
    realized = _generated_lookup(generated)

    for scheduled in occurrences(series, window_start, window_end):
        exception = by_date.get(scheduled)
        amount = series.amount
        description = series.description
        effective = scheduled
        is_modified = False
        is_skipped = False

        if exception is not None:
            if exception.is_skipped:
                is_skipped = True
            else:
                is_modified = True
                effective = exception.effective_date
                amount = exception.modified_amount or amount
                description = exception.modified_description or description

        magnitude = Money(amount=abs(amount.amount), currency=amount.currency)
        yield ProjectedTransferInstance(
            series_id=series.id,
            scheduled_date=scheduled,
            effective_date=effective,
            amount=magnitude,
            description=description,
            source=TransferLeg(
                account_id=series.source_account_id,
                amount=magnitude.negated(),
            ),
            destination=TransferLeg(
                account_id=series.destination_account_id,
                amount=magnitude,
            ),
            is_modified=is_modified,
            is_skipped=is_skipped,
            is_generated=scheduled in realized,
            generated_transaction_id=realized.get(scheduled),
            series_created_at=series.created_at,
        )


def find_past_due_transfers(
    series: RecurringTransferSeries,
    exceptions: Iterable[InstanceException],
    as_of: date,
    lookback_days: int,
    generated: Optional[GeneratedKeys] = None,
) -> list[ProjectedTransferInstance]:
    """Transfer equivalent of find_past_due."""
    if lookback_days < 1:
        return []

    return [
        instance
        for instance in project_transfer_instances(
            series,
            exceptions,
            as_of - timedelta(days=lookback_days),
            as_of - timedelta(days=1),
            generated,
        )
        if not instance.is_generated
        and not instance.is_skipped
        and instance.effective_date < as_of
    ]


def transfer_leg_instances(
    instance: ProjectedTransferInstance,
    account_id: Optional[UUID] = None,
) -> list[ProjectedInstance]:
    """
    Flatten a transfer occurrence into one single-account instance per leg.

    With account_id, only the leg posting to that account is returned.
    The legs keep the transfer's series id and scheduled date, so they
    reconcile against imported transactions like any other occurrence.
    """
    legs = []
    for leg in (instance.source, instance.destination):
        if account_id is not None and leg.account_id != account_id:
            continue
        legs.append(ProjectedInstance(
            series_id=instance.series_id,
            account_id=leg.account_id,
            scheduled_date=instance.scheduled_date,
            effective_date=instance.effective_date,
            amount=leg.amount,
            description=instance.description,
            is_modified=instance.is_modified,
            is_skipped=instance.is_skipped,
            is_generated=instance.is_generated,
            generated_transaction_id=instance.generated_transaction_id,
            series_created_at=instance.series_created_at,
        ))
    return legs


class RecurrenceProjector:
    """
    Facade over the projection functions for a batch of series.

    Holds only the configured lookback; every call is still pure.
    """

    def __init__(self, past_due_lookback_days: int = 30):
        self._lookback_days = past_due_lookback_days

    @property
    def lookback_days(self) -> int:
        return self._lookback_days

    def project(
        self,
        series_list: Iterable[RecurringSeries],
        exceptions_by_series: Mapping[UUID, list[InstanceException]],
        window_start: date,
        window_end: date,
        generated_by_series: Optional[Mapping[UUID, GeneratedKeys]] = None,
    ) -> list[ProjectedInstance]:
        """All occurrences of many series, ordered by scheduled date."""
        generated_by_series = generated_by_series or {}
        instances = []
        for series in series_list:
            instances.extend(project_instances(
                series,
                exceptions_by_series.get(series.id, []),
                window_start,
                window_end,
                generated_by_series.get(series.id),
            ))
        instances.sort(key=lambda i: (i.scheduled_date, i.series_created_at, i.series_id))
        return instances

    def past_due(
        self,
        series_list: Iterable[RecurringSeries],
        exceptions_by_series: Mapping[UUID, list[InstanceException]],
        as_of: date,
        generated_by_series: Optional[Mapping[UUID, GeneratedKeys]] = None,
        lookback_days: Optional[int] = None,
    ) -> PastDueSummary:
        """Past-due summary across many series."""
        generated_by_series = generated_by_series or {}
        lookback = lookback_days if lookback_days is not None else self._lookback_days
        found = []
        for series in series_list:
            found.extend(find_past_due(
                series,
                exceptions_by_series.get(series.id, []),
                as_of,
                lookback,
                generated_by_series.get(series.id),
            ))
        summary = summarize_past_due(found, as_of)
        logger.debug(
            "past_due_computed",
            as_of=as_of.isoformat(),
            count=summary.total_count,
            lookback_days=lookback,
        )
        return summary

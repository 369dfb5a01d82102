"""Shared fixtures for the budget reconciliation tests."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from budget_recon.models.series import (
    Money,
    MonthlyPattern,
    RecurringSeries,
)
from budget_recon.models.transaction import ImportedTransaction


BASE_CREATED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def usd(amount: str) -> Money:
    return Money(amount=Decimal(amount))


def make_series(
    account_id: UUID,
    description: str = "ACME Utilities Bill Pmt",
    amount: str = "-50.00",
    day_of_month: int = 15,
    start_date: date = date(2024, 1, 15),
    created_offset_minutes: int = 0,
    **overrides,
) -> RecurringSeries:
    fields = dict(
        account_id=account_id,
        description=description,
        amount=usd(amount),
        pattern=MonthlyPattern(day_of_month=day_of_month),
        start_date=start_date,
        created_at=BASE_CREATED_AT + timedelta(minutes=created_offset_minutes),
    )
    fields.update(overrides)
    return RecurringSeries(**fields)


def make_transaction(
    account_id: UUID,
    posted_date: date,
    description: str,
    amount: str,
    **overrides,
) -> ImportedTransaction:
    return ImportedTransaction(
        account_id=account_id,
        posted_date=posted_date,
        description=description,
        amount=usd(amount),
        **overrides,
    )


@pytest.fixture
def account_id() -> UUID:
    return uuid4()


@pytest.fixture
def utility_series(account_id) -> RecurringSeries:
    """Monthly $50 utility bill due on the 15th."""
    return make_series(account_id)


@pytest.fixture
def acme_transaction(account_id) -> ImportedTransaction:
    """The utility bill paid two days late, $2 over."""
    return make_transaction(
        account_id,
        date(2024, 5, 17),
        "ACME UTILITIES 05/15 BILL PMT REF#9X7Q2",
        "-52.00",
    )

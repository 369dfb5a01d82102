"""
Imported Transaction Models

Transactions arrive from bank imports. They are the "actual" side of
reconciliation and the subject of duplicate-import detection.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from budget_recon.models.series import Money, utc_now


class TransactionType(str, Enum):
    """Direction of a transaction, derived from the sign of its amount."""
    DEBIT = "debit"
    CREDIT = "credit"


class ImportedTransaction(BaseModel):
    """
    A real transaction posted by a bank.

    `posted_date` is when the bank booked it. The description may embed the date
    the purchase was actually initiated; see
    normalizer.extract_initiated_date.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    account_id: UUID
    posted_date: date = Field(
        ...,
        description="Date the bank posted the transaction"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Raw bank description"
    )
    amount: Money
    category_id: Optional[UUID] = None
    import_batch_id: Optional[UUID] = None
    imported_at: datetime = Field(default_factory=utc_now)

    # Link to the recurring occurrence this transaction realizes
    recurring_series_id: Optional[UUID] = None
    recurring_instance_date: Optional[date] = None

    @property
    def transaction_type(self) -> TransactionType:
        if self.amount.amount < 0:
            return TransactionType.DEBIT
        return TransactionType.CREDIT

    @property
    def is_linked(self) -> bool:
        return self.recurring_series_id is not None


class DuplicateMatch(BaseModel):
    """An import row recognised as already present."""

    row_index: int = Field(
        ...,
        ge=0,
        description="Position of the row in the import batch"
    )
    candidate_id: UUID
    duplicate_of_id: UUID = Field(
        ...,
        description="Existing transaction the row duplicates"
    )
    similarity: float = Field(..., ge=0.0, le=1.0)
    day_difference: int = Field(..., ge=0)
    matched_on: str = Field(
        ...,
        pattern="^(posted_date|initiated_date)$",
        description="Which dates lined up"
    )


class DuplicateCheckResult(BaseModel):
    """Outcome of filtering an import batch against existing transactions."""

    checked_at: datetime = Field(default_factory=utc_now)
    accepted: list[ImportedTransaction] = Field(
        default_factory=list,
        description="Rows to insert"
    )
    duplicates: list[DuplicateMatch] = Field(
        default_factory=list,
        description="Rows skipped as duplicates"
    )

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

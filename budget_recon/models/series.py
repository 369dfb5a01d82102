"""
Recurring Series Models

These models define the schemas for recurring cash flows and the
instances projected from them. They are designed to:
1. Reject structurally invalid patterns at construction time
2. Keep money exact (Decimal, never float)
3. Be serializable for storage and logging

DESIGN DECISION: The recurrence pattern is a tagged union, one variant per
frequency. A monthly pattern cannot exist without a day of month, so the
projection engine never has to validate its input.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# MONEY
# =============================================================================

class Money(BaseModel):
    """
    A signed amount in a single currency.

    Negative amounts are outflows (bills), positive amounts are inflows
    (paychecks). No conversion between currencies is ever attempted.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(
        ...,
        description="Signed amount"
    )
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code"
    )

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Currency codes are compared upper-cased."""
        return v.strip().upper()

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    def negated(self) -> "Money":
        return Money(amount=-self.amount, currency=self.currency)

    def __str__(self) -> str:
        return f"{self.amount:,.2f} {self.currency}"


# =============================================================================
# RECURRENCE PATTERNS
# =============================================================================

class Frequency(str, Enum):
    """How often a series recurs."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class _PatternBase(BaseModel):
    # Fields that belong to other variants are dropped, not rejected.
    model_config = ConfigDict(frozen=True, extra="ignore")

    interval: int = Field(
        default=1,
        ge=1,
        description="Number of frequency units between occurrences"
    )

    @property
    def kind(self) -> Frequency:
        return Frequency(self.frequency)


class DailyPattern(_PatternBase):
    """Every `interval` days."""
    frequency: Literal["daily"] = "daily"


class WeeklyPattern(_PatternBase):
    """Every `interval` weeks on a weekday (0 = Monday)."""
    frequency: Literal["weekly"] = "weekly"
    day_of_week: int = Field(
        ...,
        ge=0,
        le=6,
        description="Weekday, 0 = Monday ... 6 = Sunday"
    )


class BiWeeklyPattern(_PatternBase):
    """Every 2 × `interval` weeks on a weekday."""
    frequency: Literal["biweekly"] = "biweekly"
    day_of_week: int = Field(..., ge=0, le=6)


class MonthlyPattern(_PatternBase):
    """
    Every `interval` months on a day of month.

    Days past the end of a short month are clamped to its last day.
    """
    frequency: Literal["monthly"] = "monthly"
    day_of_month: int = Field(
        ...,
        ge=1,
        le=31,
        description="Target day of month, clamped in shorter months"
    )


class QuarterlyPattern(_PatternBase):
    """Every 3 × `interval` months on a day of month."""
    frequency: Literal["quarterly"] = "quarterly"
    day_of_month: int = Field(..., ge=1, le=31)


class YearlyPattern(_PatternBase):
    """Every `interval` years on a month and day."""
    frequency: Literal["yearly"] = "yearly"
    day_of_month: int = Field(..., ge=1, le=31)
    month_of_year: int = Field(
        ...,
        ge=1,
        le=12,
        description="Month, 1 = January"
    )


RecurrencePattern = Annotated[
    Union[
        DailyPattern,
        WeeklyPattern,
        BiWeeklyPattern,
        MonthlyPattern,
        QuarterlyPattern,
        YearlyPattern,
    ],
    Field(discriminator="frequency"),
]

_pattern_adapter = TypeAdapter(RecurrencePattern)


def build_pattern(
    frequency: Union[Frequency, str],
    interval: int = 1,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    month_of_year: Optional[int] = None,
) -> RecurrencePattern:
    """
    Build the pattern variant for a frequency from loose fields.

    Raises pydantic.ValidationError when a field the variant requires is
    missing or out of range.
    """
    fields = {
        "frequency": Frequency(frequency).value,
        "interval": interval,
        "day_of_week": day_of_week,
        "day_of_month": day_of_month,
        "month_of_year": month_of_year,
    }
    return _pattern_adapter.validate_python(
        {k: v for k, v in fields.items() if v is not None}
    )


# =============================================================================
# SERIES
# =============================================================================

class _ScheduleBase(BaseModel):
    """Fields shared by every kind of recurring series."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Human-readable label"
    )
    amount: Money
    category_id: Optional[UUID] = None
    pattern: RecurrencePattern
    start_date: date = Field(
        ...,
        description="Inclusive lower bound of the schedule"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Inclusive upper bound, or None for open-ended"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_dates(self):
        """End date cannot precede start date."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def frequency(self) -> Frequency:
        return self.pattern.kind

    @property
    def interval(self) -> int:
        return self.pattern.interval


class RecurringSeries(_ScheduleBase):
    """
    A recurring bill, paycheck or other single-account cash flow.

    The amount carries the canonical sign of the flow.
    """

    account_id: UUID = Field(
        ...,
        description="Account the occurrences post to"
    )


class RecurringTransferSeries(_ScheduleBase):
    """
    A recurring movement between two accounts.

    `amount` is the positive magnitude moved; each occurrence produces a
    negative leg on the source and a positive leg on the destination.
    """

    source_account_id: UUID
    destination_account_id: UUID


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ExceptionKind(str, Enum):
    """What an exception does to its occurrence."""
    MODIFIED = "modified"
    SKIPPED = "skipped"


class InstanceException(BaseModel):
    """
    A per-occurrence override, keyed by (series_id, original_date).

    A skipped exception carries no overrides. A modified exception carries
    at least one of: new date, new amount, new description.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    series_id: UUID
    original_date: date = Field(
        ...,
        description="Scheduled date of the occurrence being overridden"
    )
    kind: ExceptionKind
    modified_date: Optional[date] = None
    modified_amount: Optional[Money] = None
    modified_description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('modified_description')
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v:
            return None
        return v

    @model_validator(mode='after')
    def validate_overrides(self) -> 'InstanceException':
        has_override = (
            self.modified_date is not None
            or self.modified_amount is not None
            or self.modified_description is not None
        )
        if self.kind == ExceptionKind.SKIPPED and has_override:
            raise ValueError("A skipped exception cannot carry overrides")
        if self.kind == ExceptionKind.MODIFIED and not has_override:
            raise ValueError(
                "A modified exception needs a new date, amount or description"
            )
        return self

    @classmethod
    def modified(
        cls,
        series_id: UUID,
        original_date: date,
        modified_date: Optional[date] = None,
        modified_amount: Optional[Money] = None,
        modified_description: Optional[str] = None,
    ) -> 'InstanceException':
        return cls(
            series_id=series_id,
            original_date=original_date,
            kind=ExceptionKind.MODIFIED,
            modified_date=modified_date,
            modified_amount=modified_amount,
            modified_description=modified_description,
        )

    @classmethod
    def skipped(cls, series_id: UUID, original_date: date) -> 'InstanceException':
        return cls(
            series_id=series_id,
            original_date=original_date,
            kind=ExceptionKind.SKIPPED,
        )

    @property
    def is_skipped(self) -> bool:
        return self.kind == ExceptionKind.SKIPPED

    @property
    def effective_date(self) -> date:
        return self.modified_date or self.original_date


# =============================================================================
# PROJECTED INSTANCES (engine output, never persisted)
# =============================================================================

class ProjectedInstance(BaseModel):
    """
    One occurrence of a series inside a projection window.

    `scheduled_date` is the identity of the occurrence. `effective_date`
    differs from it only when an exception rescheduled the occurrence.
    """
    model_config = ConfigDict(frozen=True)

    series_id: UUID
    account_id: UUID
    category_id: Optional[UUID] = None
    scheduled_date: date
    effective_date: date
    amount: Money
    description: str
    is_modified: bool = False
    is_skipped: bool = False
    is_generated: bool = Field(
        default=False,
        description="A real transaction already exists for this occurrence"
    )
    generated_transaction_id: Optional[UUID] = None
    series_created_at: datetime = Field(
        ...,
        description="Creation time of the series, used for tie-breaking"
    )

    @property
    def key(self) -> tuple[UUID, date]:
        return (self.series_id, self.scheduled_date)


class TransferLeg(BaseModel):
    """One side of a transfer occurrence."""
    model_config = ConfigDict(frozen=True)

    account_id: UUID
    amount: Money


class ProjectedTransferInstance(BaseModel):
    """One occurrence of a transfer series, with both legs."""
    model_config = ConfigDict(frozen=True)

    series_id: UUID
    scheduled_date: date
    effective_date: date
    amount: Money = Field(
        ...,
        description="Positive magnitude moved"
    )
    description: str
    source: TransferLeg
    destination: TransferLeg
    is_modified: bool = False
    is_skipped: bool = False
    is_generated: bool = False
    generated_transaction_id: Optional[UUID] = None
    series_created_at: datetime

    @property
    def key(self) -> tuple[UUID, date]:
        return (self.series_id, self.scheduled_date)

    def leg_for(self, account_id: UUID) -> Optional[TransferLeg]:
        """The leg posting to an account, if any."""
        for leg in (self.source, self.destination):
            if leg.account_id == account_id:
                return leg
        return None


class PastDueItem(BaseModel):
    """An occurrence that should already have happened but has no transaction."""

    instance: ProjectedInstance
    days_past_due: int = Field(..., ge=1)


class PastDueSummary(BaseModel):
    """Aggregate view over past-due occurrences."""

    as_of: date
    items: list[PastDueItem] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    oldest_date: Optional[date] = None
    totals_by_currency: dict[str, Decimal] = Field(default_factory=dict)

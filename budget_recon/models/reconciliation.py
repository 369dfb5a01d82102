"""
Reconciliation Models

A ReconciliationMatch links one imported transaction to one occurrence
(series_id, instance_date) of a recurring series.

CRITICAL: A transaction has at most one active match in ACCEPTED or
AUTO_MATCHED status, and so does an occurrence. Rejected matches are
kept so the same pair is never suggested again. Overwrites and unlinks
create a new record that supersedes the old one; history is never deleted.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from budget_recon.models.series import utc_now


HIGH_CONFIDENCE_THRESHOLD = 0.85
MEDIUM_CONFIDENCE_THRESHOLD = 0.60


# =============================================================================
# ENUMS
# =============================================================================

class ConfidenceLevel(str, Enum):
    """Coarse bucket of a confidence score."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchStatus(str, Enum):
    """
    Match lifecycle state.

    SUGGESTED → ACCEPTED | REJECTED, by explicit user decision.
    AUTO_MATCHED is reached directly at creation when the score clears
    the auto-match threshold.
    """
    SUGGESTED = "suggested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    AUTO_MATCHED = "auto_matched"


class MatchSource(str, Enum):
    """Who created the match."""
    AUTO = "auto"
    MANUAL = "manual"


POSITIVE_STATUSES = frozenset({MatchStatus.ACCEPTED, MatchStatus.AUTO_MATCHED})


def confidence_level_for(score: float) -> ConfidenceLevel:
    """Bucket a score. Independent of the auto-match threshold."""
    if score >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# =============================================================================
# TOLERANCES AND WEIGHTS
# =============================================================================

class MatchingTolerances(BaseModel):
    """
    Thresholds a candidate pair must satisfy.

    Passed explicitly to every matching call; defaults come from
    MatchingSettings.
    """
    model_config = ConfigDict(frozen=True)

    date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="Maximum |posted - scheduled| in days"
    )
    amount_tolerance_percent: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        le=1,
        description="Allowed variance as a fraction of the expected amount"
    )
    amount_tolerance_absolute: Decimal = Field(
        default=Decimal("10.00"),
        ge=0,
        description="Allowed variance in currency units"
    )
    description_similarity_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum normalized description similarity"
    )
    auto_match_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Score at or above which a match is created AUTO_MATCHED"
    )

    def amount_ceiling(self, expected: Decimal) -> Decimal:
        """Largest |variance| that still passes the amount check."""
        return max(self.amount_tolerance_absolute, abs(expected) * self.amount_tolerance_percent)


class ScoringWeights(BaseModel):
    """
    Blend of the three sub-scores into one confidence score.

    exact_match_similarity_floor lets a pair whose amount and date both
    match exactly qualify with a description similarity below the
    configured threshold, as long as it reaches this floor.
    """
    model_config = ConfigDict(frozen=True)

    description_weight: float = Field(default=0.50, ge=0.0, le=1.0)
    amount_weight: float = Field(default=0.30, ge=0.0, le=1.0)
    date_weight: float = Field(default=0.20, ge=0.0, le=1.0)
    exact_match_similarity_floor: float = Field(default=0.30, ge=0.0, le=1.0)

    @model_validator(mode='after')
    def validate_sum(self) -> 'ScoringWeights':
        total = self.description_weight + self.amount_weight + self.date_weight
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.4f}")
        return self


# =============================================================================
# MATCH RECORD
# =============================================================================

class ReconciliationMatch(BaseModel):
    """
    A persisted link (or proposed link) between a transaction and an
    occurrence. Mutated only through budget_recon.matching.lifecycle.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    transaction_id: UUID
    series_id: UUID
    instance_date: date = Field(
        ...,
        description="Scheduled date of the occurrence"
    )
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    status: MatchStatus = MatchStatus.SUGGESTED
    source: MatchSource = MatchSource.AUTO
    amount_variance: Decimal = Field(
        ...,
        description="Actual minus expected amount"
    )
    date_offset_days: int = Field(
        ...,
        description="Posted date minus scheduled date, in days"
    )
    description_similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None
    supersedes_id: Optional[UUID] = Field(
        default=None,
        description="Earlier record this one replaces"
    )

    @property
    def confidence_level(self) -> ConfidenceLevel:
        return confidence_level_for(self.confidence_score)

    @property
    def is_positive(self) -> bool:
        return self.status in POSITIVE_STATUSES

    @property
    def is_resolved(self) -> bool:
        return self.status != MatchStatus.SUGGESTED

    @property
    def instance_key(self) -> tuple[UUID, date]:
        return (self.series_id, self.instance_date)

    @property
    def pair_key(self) -> tuple[UUID, UUID, date]:
        return (self.transaction_id, self.series_id, self.instance_date)


# =============================================================================
# SCORING OUTPUT
# =============================================================================

class MatchCandidate(BaseModel):
    """One scored (transaction, occurrence) pair that passed the hard filters."""
    model_config = ConfigDict(frozen=True)

    transaction_id: UUID
    series_id: UUID
    instance_date: date = Field(..., description="Scheduled date")
    effective_date: date
    series_created_at: datetime
    description_similarity: float = Field(..., ge=0.0, le=1.0)
    amount_score: float = Field(..., ge=0.0, le=1.0)
    date_score: float = Field(..., ge=0.0, le=1.0)
    score: float = Field(..., ge=0.0, le=1.0)
    amount_variance: Decimal
    date_offset_days: int
    qualifies: bool = Field(
        ...,
        description="Description similarity is high enough to propose"
    )

    @property
    def confidence_level(self) -> ConfidenceLevel:
        return confidence_level_for(self.score)

    @property
    def instance_key(self) -> tuple[UUID, date]:
        return (self.series_id, self.instance_date)

    @property
    def sort_key(self) -> tuple:
        """Best first; ties broken by closeness, series age, id, date."""
        return (
            -self.score,
            abs(self.date_offset_days),
            self.series_created_at,
            self.series_id,
            self.instance_date,
        )


class TransactionCandidates(BaseModel):
    """All qualifying candidates for one transaction, best first."""

    transaction_id: UUID
    candidates: list[MatchCandidate] = Field(default_factory=list)

    @property
    def best(self) -> Optional[MatchCandidate]:
        return self.candidates[0] if self.candidates else None


# =============================================================================
# BATCH RESULTS
# =============================================================================

class BulkItemOutcome(BaseModel):
    """Result of one item in a batch operation."""

    item_id: UUID = Field(
        ...,
        description="Match id (or transaction id for find-matches)"
    )
    success: bool
    status: Optional[MatchStatus] = None
    error_code: Optional[str] = Field(
        default=None,
        pattern="^(not_found|conflict|invalid_state|storage)$",
    )
    error_message: Optional[str] = None


class BulkActionResult(BaseModel):
    """Per-item outcomes plus aggregate counts."""

    outcomes: list[BulkItemOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


class FindMatchesResult(BaseModel):
    """New match records grouped by transaction."""

    matches_by_transaction: dict[UUID, list[ReconciliationMatch]] = Field(
        default_factory=dict
    )
    failures: list[BulkItemOutcome] = Field(
        default_factory=list,
        description="Transactions that could not be processed"
    )

    @property
    def total_matches(self) -> int:
        return sum(len(v) for v in self.matches_by_transaction.values())

    @property
    def auto_matched_count(self) -> int:
        return sum(
            1
            for matches in self.matches_by_transaction.values()
            for m in matches
            if m.status == MatchStatus.AUTO_MATCHED
        )


# =============================================================================
# STATUS REPORT
# =============================================================================

class InstanceState(str, Enum):
    """Reconciliation state of one expected occurrence."""
    MATCHED = "matched"
    PENDING = "pending"
    MISSING = "missing"


class InstanceReconciliationStatus(BaseModel):
    """Where one expected occurrence stands."""

    series_id: UUID
    description: str
    instance_date: date
    expected_amount: Decimal
    currency: str
    state: InstanceState
    match_id: Optional[UUID] = None
    matched_transaction_id: Optional[UUID] = None
    amount_variance: Optional[Decimal] = None


class ReconciliationStatusReport(BaseModel):
    """Matched / pending / missing breakdown for one calendar month."""

    year: int = Field(..., ge=1)
    month: int = Field(..., ge=1, le=12)
    instances: list[InstanceReconciliationStatus] = Field(default_factory=list)

    @property
    def total_expected(self) -> int:
        return len(self.instances)

    @property
    def matched_count(self) -> int:
        return sum(1 for i in self.instances if i.state == InstanceState.MATCHED)

    @property
    def pending_count(self) -> int:
        return sum(1 for i in self.instances if i.state == InstanceState.PENDING)

    @property
    def missing_count(self) -> int:
        return sum(1 for i in self.instances if i.state == InstanceState.MISSING)

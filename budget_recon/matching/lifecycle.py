"""
Match Lifecycle

Pure state transitions for ReconciliationMatch. Every function returns a
new record (or an updated copy) and leaves its inputs untouched; the
caller persists the result through MatchStoreInterface, whose
check-and-set enforces the same one-to-one rule under concurrency.

    SUGGESTED ──accept──▶ ACCEPTED
        │
        └──reject──▶ REJECTED

    (creation) ──score ≥ auto-match threshold──▶ AUTO_MATCHED
    (creation) ──manual link──▶ ACCEPTED (source MANUAL)

ACCEPTED, AUTO_MATCHED and REJECTED are terminal. Unlinking a positive
match, or manually linking a pair that already has a record, creates a new
record that supersedes the old one.
"""

from datetime import datetime
from typing import Iterable, Optional

from budget_recon.matching.normalizer import similarity
from budget_recon.models.reconciliation import (
    MatchSource,
    MatchStatus,
    ReconciliationMatch,
)
from budget_recon.models.series import ProjectedInstance, utc_now
from budget_recon.models.transaction import ImportedTransaction


def active_matches(matches: Iterable[ReconciliationMatch]) -> list[ReconciliationMatch]:
    """Records not superseded by a later record."""
    matches = list(matches)
    superseded = {m.supersedes_id for m in matches if m.supersedes_id is not None}
    return [m for m in matches if m.id not in superseded]


def is_superseded(match: ReconciliationMatch, existing: Iterable[ReconciliationMatch]) -> bool:
    return any(m.supersedes_id == match.id for m in existing)


def check_one_to_one(
    candidate: ReconciliationMatch,
    existing: Iterable[ReconciliationMatch],
) -> None:
    """
    Raise MatchConflictError if `candidate`, as a positive match, would give
    its transaction or its occurrence a second active positive match.

    The candidate itself and the record it supersedes are not counted.
    """
    ignore = {candidate.id, candidate.supersedes_id}
    for other in active_matches(existing):
        if other.id in ignore or not other.is_positive:
            continue
        if other.transaction_id == candidate.transaction_id:
            raise MatchConflictError(
                f"Transaction {candidate.transaction_id} is already matched "
                f"(match {other.id})",
                conflicting_match_id=other.id,
            )
        if other.instance_key == candidate.instance_key:
            raise MatchConflictError(
                f"Occurrence {candidate.series_id} on "
                f"{candidate.instance_date.isoformat()} is already matched "
                f"(match {other.id})",
                conflicting_match_id=other.id,
            )


def accept(
    match: ReconciliationMatch,
    existing: Iterable[ReconciliationMatch] = (),
    now: Optional[datetime] = None,
) -> ReconciliationMatch:
    """
    Accept a suggested match.

    Raises:
        InvalidTransitionError: If the match is not SUGGESTED or was superseded
        MatchConflictError: If the transaction or occurrence is already matched
    """
    existing = list(existing)
    if match.status != MatchStatus.SUGGESTED:
        raise InvalidTransitionError(match.id, match.status, MatchStatus.ACCEPTED)
    if is_superseded(match, existing):
        raise InvalidTransitionError(
            match.id, match.status, MatchStatus.ACCEPTED, reason="match was superseded"
        )

    accepted = match.model_copy(update={
        "status": MatchStatus.ACCEPTED,
        "resolved_at": now or utc_now(),
    })
    check_one_to_one(accepted, existing)
    return accepted


def reject(
    match: ReconciliationMatch,
    now: Optional[datetime] = None,
) -> ReconciliationMatch:
    """
    Reject a suggested match. The record is kept so the pair is never
    suggested again.

    Raises:
        InvalidTransitionError: If the match is not SUGGESTED
    """
    if match.status != MatchStatus.SUGGESTED:
        raise InvalidTransitionError(match.id, match.status, MatchStatus.REJECTED)
    return match.model_copy(update={
        "status": MatchStatus.REJECTED,
        "resolved_at": now or utc_now(),
    })


def manual_match(
    transaction: ImportedTransaction,
    instance: ProjectedInstance,
    existing: Iterable[ReconciliationMatch] = (),
    now: Optional[datetime] = None,
) -> ReconciliationMatch:
    """
    Link a transaction to an occurrence chosen by the user, bypassing scoring.

    The new record is ACCEPTED with source MANUAL and confidence 1.0. Any
    active record for the exact same pair is superseded by it, so an
    auto-matched pair can be confirmed as a manual link.

    Raises:
        MatchConflictError: If the transaction or occurrence is linked elsewhere
        IncompatibleCurrencyError: If the currencies differ
    """
    if transaction.amount.currency != instance.amount.currency:
        raise IncompatibleCurrencyError(
            f"Cannot link {transaction.amount.currency} transaction to "
            f"{instance.amount.currency} occurrence"
        )

    existing = list(existing)
    now = now or utc_now()
    pair = (transaction.id, instance.series_id, instance.scheduled_date)
    previous = next(
        (m for m in active_matches(existing) if m.pair_key == pair),
        None,
    )

    linked = ReconciliationMatch(
        transaction_id=transaction.id,
        series_id=instance.series_id,
        instance_date=instance.scheduled_date,
        confidence_score=1.0,
        status=MatchStatus.ACCEPTED,
        source=MatchSource.MANUAL,
        amount_variance=transaction.amount.amount - instance.amount.amount,
        date_offset_days=(transaction.posted_date - instance.scheduled_date).days,
        description_similarity=similarity(transaction.description, instance.description),
        created_at=now,
        resolved_at=now,
        supersedes_id=previous.id if previous else None,
    )
    check_one_to_one(linked, existing)
    return linked


def unlink(
    match: ReconciliationMatch,
    existing: Iterable[ReconciliationMatch] = (),
    now: Optional[datetime] = None,
) -> ReconciliationMatch:
    """
    Undo a positive match.

    Returns a new REJECTED record superseding `match`; the transaction and
    the occurrence both become unmatched and the pair is not suggested again.

    Raises:
        InvalidTransitionError: If the match is not positive or was superseded
    """
    if not match.is_positive:
        raise InvalidTransitionError(
            match.id, match.status, MatchStatus.REJECTED, reason="only positive matches can be unlinked"
        )
    if is_superseded(match, existing):
        raise InvalidTransitionError(
            match.id, match.status, MatchStatus.REJECTED, reason="match was superseded"
        )

    now = now or utc_now()
    return ReconciliationMatch(
        transaction_id=match.transaction_id,
        series_id=match.series_id,
        instance_date=match.instance_date,
        confidence_score=match.confidence_score,
        status=MatchStatus.REJECTED,
        source=MatchSource.MANUAL,
        amount_variance=match.amount_variance,
        date_offset_days=match.date_offset_days,
        description_similarity=match.description_similarity,
        created_at=now,
        resolved_at=now,
        supersedes_id=match.id,
    )


class MatchingError(Exception):
    """Base exception for reconciliation decisions."""
    pass


class InvalidTransitionError(MatchingError):
    """The requested transition is not allowed from the current status."""

    def __init__(
        self,
        match_id,
        current: MatchStatus,
        requested: MatchStatus,
        reason: Optional[str] = None,
    ):
        self.match_id = match_id
        self.current = current
        self.requested = requested
        message = (
            f"Cannot move match {match_id} from {current.value} to {requested.value}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MatchConflictError(MatchingError):
    """The transition would break the one-to-one matching rule."""

    def __init__(self, message: str, conflicting_match_id=None):
        self.conflicting_match_id = conflicting_match_id
        super().__init__(message)


class IncompatibleCurrencyError(MatchingError):
    """Transaction and occurrence are in different currencies."""
    pass

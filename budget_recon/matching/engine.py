"""
Reconciliation Matching Engine

Turns imported transactions and projected occurrences into match records.

Flow:
1. find_candidates → every qualifying (transaction, occurrence) pair,
   scored and sorted best first
2. propose_matches → new ReconciliationMatch records, honouring the
   one-to-one rule against existing records and within the batch
3. The caller persists the records; user decisions go through lifecycle

DESIGN DECISION: Ordering is fully deterministic. Candidates are sorted by
score, then by |date offset|, then by series creation time, series id and
scheduled date, so identical inputs always produce identical matches.
"""

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from budget_recon.matching.lifecycle import active_matches
from budget_recon.matching.scorer import DEFAULT_WEIGHTS, score_candidate
from budget_recon.models.reconciliation import (
    InstanceReconciliationStatus,
    InstanceState,
    MatchCandidate,
    MatchSource,
    MatchStatus,
    MatchingTolerances,
    ReconciliationMatch,
    ReconciliationStatusReport,
    ScoringWeights,
    TransactionCandidates,
)
from budget_recon.models.series import ProjectedInstance, utc_now
from budget_recon.models.transaction import ImportedTransaction


def find_candidates(
    transactions: Iterable[ImportedTransaction],
    instances: Iterable[ProjectedInstance],
    tolerances: MatchingTolerances,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> dict[UUID, TransactionCandidates]:
    """
    Score every transaction against the occurrences of its account.

    Skipped occurrences, occurrences that already have a transaction and
    transactions already linked to an occurrence are left out. Only
    qualifying candidates are kept; transactions without any are absent
    from the result.
    """
    by_account: dict[UUID, list[ProjectedInstance]] = defaultdict(list)
    for instance in instances:
        if instance.is_skipped or instance.is_generated:
            continue
        by_account[instance.account_id].append(instance)

    result: dict[UUID, TransactionCandidates] = {}
    for transaction in transactions:
        if transaction.is_linked:
            continue

        scored = []
        for instance in by_account.get(transaction.account_id, []):
            candidate = score_candidate(transaction, instance, tolerances, weights)
            if candidate is not None and candidate.qualifies:
                scored.append(candidate)

        if scored:
            scored.sort(key=lambda c: c.sort_key)
            result[transaction.id] = TransactionCandidates(
                transaction_id=transaction.id,
                candidates=scored,
            )

    return result


def _match_from_candidate(
    candidate: MatchCandidate,
    status: MatchStatus,
    now: datetime,
) -> ReconciliationMatch:
    return ReconciliationMatch(
        transaction_id=candidate.transaction_id,
        series_id=candidate.series_id,
        instance_date=candidate.instance_date,
        confidence_score=candidate.score,
        status=status,
        source=MatchSource.AUTO,
        amount_variance=candidate.amount_variance,
        date_offset_days=candidate.date_offset_days,
        description_similarity=candidate.description_similarity,
        created_at=now,
        resolved_at=now if status == MatchStatus.AUTO_MATCHED else None,
    )


def propose_matches(
    candidates: dict[UUID, TransactionCandidates],
    tolerances: MatchingTolerances,
    existing: Iterable[ReconciliationMatch] = (),
    now: Optional[datetime] = None,
) -> dict[UUID, list[ReconciliationMatch]]:
    """
    Create new match records from scored candidates.

    - A pair that already has any record (including a rejection) is skipped
    - Transactions and occurrences with an active positive match are skipped
    - The best remaining candidate is AUTO_MATCHED when its score reaches
      the auto-match threshold; the other candidates are then dropped
    - Otherwise every remaining candidate becomes a SUGGESTED match

    Transactions are processed strongest first, so when two transactions
    want the same occurrence the better-scoring one claims it.
    """
    existing = list(existing)
    now = now or utc_now()

    known_pairs = {m.pair_key for m in existing}
    positive = [m for m in active_matches(existing) if m.is_positive]
    linked_transactions = {m.transaction_id for m in positive}
    claimed = {m.instance_key for m in positive}

    ordered = sorted(
        (tc for tc in candidates.values() if tc.best is not None),
        key=lambda tc: (tc.best.sort_key, tc.transaction_id),
    )

    proposed: dict[UUID, list[ReconciliationMatch]] = {}
    for tc in ordered:
        if tc.transaction_id in linked_transactions:
            continue

        viable = [
            c for c in tc.candidates
            if (c.transaction_id, c.series_id, c.instance_date) not in known_pairs
            and c.instance_key not in claimed
        ]
        if not viable:
            continue

        best = viable[0]
        if best.score >= tolerances.auto_match_threshold:
            claimed.add(best.instance_key)
            proposed[tc.transaction_id] = [
                _match_from_candidate(best, MatchStatus.AUTO_MATCHED, now)
            ]
        else:
            proposed[tc.transaction_id] = [
                _match_from_candidate(c, MatchStatus.SUGGESTED, now) for c in viable
            ]

    return proposed


def summarize_reconciliation(
    instances: Iterable[ProjectedInstance],
    matches: Iterable[ReconciliationMatch],
    year: int,
    month: int,
) -> ReconciliationStatusReport:
    """
    Matched / pending / missing state of every expected occurrence
    scheduled in a calendar month. Skipped occurrences are not expected.
    """
    by_instance: dict[tuple, list[ReconciliationMatch]] = defaultdict(list)
    for m in active_matches(matches):
        by_instance[m.instance_key].append(m)

    expected = sorted(
        (
            i for i in instances
            if not i.is_skipped
            and i.scheduled_date.year == year
            and i.scheduled_date.month == month
        ),
        key=lambda i: (i.scheduled_date, i.series_created_at, i.series_id),
    )

    rows = []
    for instance in expected:
        related = by_instance.get(instance.key, [])
        matched = next((m for m in related if m.is_positive), None)
        pending = next((m for m in related if m.status == MatchStatus.SUGGESTED), None)

        if matched is not None:
            state = InstanceState.MATCHED
            chosen = matched
        elif pending is not None:
            state = InstanceState.PENDING
            chosen = pending
        else:
            state = InstanceState.MISSING
            chosen = None

        rows.append(InstanceReconciliationStatus(
            series_id=instance.series_id,
            description=instance.description,
            instance_date=instance.scheduled_date,
            expected_amount=instance.amount.amount,
            currency=instance.amount.currency,
            state=state,
            match_id=chosen.id if chosen else None,
            matched_transaction_id=matched.transaction_id if matched else None,
            amount_variance=matched.amount_variance if matched else None,
        ))

    return ReconciliationStatusReport(year=year, month=month, instances=rows)

"""
Candidate Scoring

Scores one (transaction, occurrence) pair. Hard filters decide whether the
pair is a candidate at all; three sub-scores in [0, 1] are then blended:

    score = description_weight × description_similarity
          + amount_weight      × amount_score
          + date_weight        × date_score

with default weights 0.50 / 0.30 / 0.20.

Worked example: a $50.00 bill due on the 15th, paid $52.00 on the 17th as
"ACME UTILITIES 05/15 BILL PMT REF#9X7Q2". Similarity 1.0, amount
1 - 2/10 = 0.80, date 1 - 2/7 ≈ 0.714; score ≈ 0.883 (HIGH).
"""

from decimal import Decimal
from typing import Optional

from budget_recon.matching.normalizer import similarity
from budget_recon.models.reconciliation import (
    MatchCandidate,
    MatchingTolerances,
    ScoringWeights,
)
from budget_recon.models.series import ProjectedInstance
from budget_recon.models.transaction import ImportedTransaction


DEFAULT_WEIGHTS = ScoringWeights()


def amount_within_tolerance(
    actual: Decimal,
    expected: Decimal,
    tolerances: MatchingTolerances,
) -> bool:
    """|actual - expected| <= max(absolute, |expected| × percent)."""
    return abs(actual - expected) <= tolerances.amount_ceiling(expected)


def date_score(offset_days: int, tolerance_days: int) -> float:
    """Linear decay from 1.0 at the scheduled date to 0.0 at the tolerance edge."""
    if tolerance_days <= 0:
        return 1.0 if offset_days == 0 else 0.0
    return max(0.0, 1.0 - abs(offset_days) / tolerance_days)


def amount_score(variance: Decimal, ceiling: Decimal) -> float:
    """1 - min(1, |variance| / ceiling); an exact amount always scores 1.0."""
    if ceiling <= 0:
        return 1.0 if variance == 0 else 0.0
    return 1.0 - min(1.0, float(abs(variance) / ceiling))


def score_candidate(
    transaction: ImportedTransaction,
    instance: ProjectedInstance,
    tolerances: MatchingTolerances,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Optional[MatchCandidate]:
    """
    Score a pair, or return None when it fails a hard filter.

    Hard filters: same account, same currency, occurrence not skipped,
    |posted - scheduled date| within the date tolerance, amount within
    the amount tolerance. Currencies are never converted.
    """
    if instance.is_skipped:
        return None
    if transaction.account_id != instance.account_id:
        return None
    if transaction.amount.currency != instance.amount.currency:
        return None

    offset = (transaction.posted_date - instance.scheduled_date).days
    if abs(offset) > tolerances.date_tolerance_days:
        return None

    expected = instance.amount.amount
    variance = transaction.amount.amount - expected
    ceiling = tolerances.amount_ceiling(expected)
    if abs(variance) > ceiling:
        return None

    desc = similarity(transaction.description, instance.description)
    amt = amount_score(variance, ceiling)
    dte = date_score(offset, tolerances.date_tolerance_days)

    score = (
        weights.description_weight * desc
        + weights.amount_weight * amt
        + weights.date_weight * dte
    )
    score = round(min(1.0, max(0.0, score)), 6)

    exact = variance == 0 and offset == 0
    qualifies = desc >= tolerances.description_similarity_threshold or (
        exact and desc >= weights.exact_match_similarity_floor
    )

    return MatchCandidate(
        transaction_id=transaction.id,
        series_id=instance.series_id,
        instance_date=instance.scheduled_date,
        effective_date=instance.effective_date,
        series_created_at=instance.series_created_at,
        description_similarity=desc,
        amount_score=amt,
        date_score=dte,
        score=score,
        amount_variance=variance,
        date_offset_days=offset,
        qualifies=qualifies,
    )

"""Reconciliation matching package."""

from budget_recon.matching.normalizer import (
    extract_initiated_date,
    normalize_description,
    similarity,
)
from budget_recon.matching.scorer import (
    DEFAULT_WEIGHTS,
    amount_score,
    amount_within_tolerance,
    date_score,
    score_candidate,
)
from budget_recon.matching.engine import (
    find_candidates,
    propose_matches,
    summarize_reconciliation,
)
from budget_recon.matching.lifecycle import (
    IncompatibleCurrencyError,
    InvalidTransitionError,
    MatchConflictError,
    MatchingError,
    accept,
    active_matches,
    check_one_to_one,
    manual_match,
    reject,
    unlink,
)

__all__ = [
    # Normalizer
    "extract_initiated_date",
    "normalize_description",
    "similarity",
    # Scoring
    "DEFAULT_WEIGHTS",
    "amount_score",
    "amount_within_tolerance",
    "date_score",
    "score_candidate",
    # Engine
    "find_candidates",
    "propose_matches",
    "summarize_reconciliation",
    # Lifecycle
    "IncompatibleCurrencyError",
    "InvalidTransitionError",
    "MatchConflictError",
    "MatchingError",
    "accept",
    "active_matches",
    "check_one_to_one",
    "manual_match",
    "reject",
    "unlink",
]

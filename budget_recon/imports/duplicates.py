"""
Duplicate-Import Detection

Bank exports overlap: importing March, then a statement covering late
February through March, re-delivers the same rows. A row is a duplicate of
an existing transaction when it has:
- the same account
- the same direction (debit/credit) and the same absolute amount
- a description similarity of at least the threshold (0.8 by default)
- dates within window_days of each other

Card purchases complicate the date check: one export may date a row by
its posted date while another (or the description itself, "03/14") uses
the date the purchase was initiated. Each side can therefore be dated by
its posted date or by the initiated date embedded in its description.

Rows inside a single batch are never compared with each other; two
identical coffees on the same day are legitimate.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from budget_recon.config import DuplicateDetectionSettings
from budget_recon.matching.normalizer import extract_initiated_date, similarity
from budget_recon.models.transaction import (
    DuplicateCheckResult,
    DuplicateMatch,
    ImportedTransaction,
)


class DuplicateDetector:
    """
    Finds import rows that are already present.

    Pure: the caller loads the existing transactions for lookup_window()
    and passes them in.
    """

    def __init__(self, settings: Optional[DuplicateDetectionSettings] = None):
        self._settings = settings or DuplicateDetectionSettings()

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def _candidate_dates(self, txn: ImportedTransaction) -> list[tuple[date, str]]:
        dates = [(txn.posted_date, "posted_date")]
        initiated = extract_initiated_date(txn.description, txn.posted_date)
        if (
            initiated is not None
            and initiated != txn.posted_date
            and (txn.posted_date - initiated).days <= self._settings.max_posting_lag_days
        ):
            dates.append((initiated, "initiated_date"))
        return dates

    def _closest_dates(
        self,
        candidate: ImportedTransaction,
        existing: ImportedTransaction,
    ) -> tuple[int, str]:
        """Smallest day gap between any dating of the two rows."""
        best = None
        for cand_date, cand_kind in self._candidate_dates(candidate):
            for existing_date, existing_kind in self._candidate_dates(existing):
                gap = abs((cand_date - existing_date).days)
                kind = (
                    "posted_date"
                    if cand_kind == existing_kind == "posted_date"
                    else "initiated_date"
                )
                # Prefer the posted-date explanation on equal gaps
                rank = (gap, kind != "posted_date")
                if best is None or rank < best[0]:
                    best = (rank, gap, kind)
        return best[1], best[2]

    def _compare(
        self,
        candidate: ImportedTransaction,
        existing: ImportedTransaction,
    ) -> Optional[tuple[float, int, str]]:
        if candidate.account_id != existing.account_id:
            return None
        if candidate.transaction_type != existing.transaction_type:
            return None
        if candidate.amount.currency != existing.amount.currency:
            return None
        if candidate.amount.magnitude != existing.amount.magnitude:
            return None

        gap, matched_on = self._closest_dates(candidate, existing)
        if gap > self._settings.window_days:
            return None

        score = similarity(candidate.description, existing.description)
        if score < self._settings.similarity_threshold:
            return None
        return score, gap, matched_on

    def is_duplicate(
        self,
        candidate: ImportedTransaction,
        existing: ImportedTransaction,
    ) -> bool:
        """Whether `candidate` duplicates one existing transaction."""
        return self._compare(candidate, existing) is not None

    def find_duplicate(
        self,
        candidate: ImportedTransaction,
        existing: Iterable[ImportedTransaction],
        row_index: int = 0,
    ) -> Optional[DuplicateMatch]:
        """
        The existing transaction `candidate` duplicates, if any.

        When several qualify, the most similar wins, then the closest in
        date, then the lowest id.
        """
        best = None
        for other in existing:
            if other.id == candidate.id:
                continue
            compared = self._compare(candidate, other)
            if compared is None:
                continue
            score, gap, matched_on = compared
            rank = (-score, gap, other.id)
            if best is None or rank < best[0]:
                best = (rank, other, score, gap, matched_on)

        if best is None:
            return None

        _, other, score, gap, matched_on = best
        return DuplicateMatch(
            row_index=row_index,
            candidate_id=candidate.id,
            duplicate_of_id=other.id,
            similarity=round(score, 6),
            day_difference=gap,
            matched_on=matched_on,
        )

    def filter_batch(
        self,
        candidates: Iterable[ImportedTransaction],
        existing: Iterable[ImportedTransaction],
    ) -> DuplicateCheckResult:
        """
        Split an import batch into rows to insert and duplicates to skip.

        Only existing transactions are compared against; rows of the same
        batch never mark each other as duplicates.
        """
        candidates = list(candidates)
        if not self._settings.enabled:
            return DuplicateCheckResult(accepted=candidates)

        existing = list(existing)
        accepted = []
        duplicates = []
        for index, candidate in enumerate(candidates):
            match = self.find_duplicate(candidate, existing, row_index=index)
            if match is None:
                accepted.append(candidate)
            else:
                duplicates.append(match)

        return DuplicateCheckResult(accepted=accepted, duplicates=duplicates)

    def lookup_window(
        self,
        candidates: Iterable[ImportedTransaction],
    ) -> Optional[tuple[date, date]]:
        """
        Posted-date range of existing transactions that could duplicate
        any of `candidates`, or None for an empty batch.
        """
        posted = [c.posted_date for c in candidates]
        if not posted:
            return None
        reach = timedelta(
            days=self._settings.window_days + self._settings.max_posting_lag_days
        )
        return min(posted) - reach, max(posted) + reach

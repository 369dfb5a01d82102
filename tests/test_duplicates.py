"""Tests for duplicate-import detection."""

from datetime import date

from budget_recon.config import DuplicateDetectionSettings
from budget_recon.imports.duplicates import DuplicateDetector

from tests.conftest import make_transaction


class TestDuplicateDetector:
    """Tests for DuplicateDetector."""

    def test_same_row_reimported(self, account_id):
        existing = make_transaction(account_id, date(2024, 3, 10), "NETFLIX.COM", "-15.99")
        again = make_transaction(account_id, date(2024, 3, 10), "NETFLIX.COM", "-15.99")

        match = DuplicateDetector().find_duplicate(again, [existing])

        assert match is not None
        assert match.duplicate_of_id == existing.id
        assert match.day_difference == 0
        assert match.matched_on == "posted_date"

    def test_initiated_date_in_description(self, account_id):
        """Test a card purchase dated by posting in one export, by purchase in another."""
        existing = make_transaction(
            account_id, date(2024, 3, 19), "SQ *COFFEE 03/14 SEATTLE WA", "-4.75"
        )
        candidate = make_transaction(
            account_id, date(2024, 3, 14), "SQ *COFFEE SEATTLE WA", "-4.75"
        )

        match = DuplicateDetector().find_duplicate(candidate, [existing])

        assert match is not None
        assert match.matched_on == "initiated_date"
        assert match.day_difference == 0

    def test_posting_lag_beyond_limit(self, account_id):
        existing = make_transaction(
            account_id, date(2024, 3, 20), "SQ *COFFEE 03/14 SEATTLE WA", "-4.75"
        )
        candidate = make_transaction(
            account_id, date(2024, 3, 14), "SQ *COFFEE SEATTLE WA", "-4.75"
        )
        assert not DuplicateDetector().is_duplicate(candidate, existing)

    def test_direction_and_amount_must_agree(self, account_id):
        existing = make_transaction(account_id, date(2024, 3, 10), "Venmo", "-20.00")
        refund = make_transaction(account_id, date(2024, 3, 10), "Venmo", "20.00")
        different = make_transaction(account_id, date(2024, 3, 10), "Venmo", "-20.01")

        detector = DuplicateDetector()
        assert not detector.is_duplicate(refund, existing)
        assert not detector.is_duplicate(different, existing)

    def test_reference_only_descriptions_not_merged(self, account_id):
        """Test two different ACH payments of the same amount on the same day."""
        existing = make_transaction(account_id, date(2024, 3, 10), "ACH 98765432", "-200.00")
        other = make_transaction(account_id, date(2024, 3, 10), "ACH 12345678", "-200.00")
        assert not DuplicateDetector().is_duplicate(other, existing)

    def test_outside_window(self, account_id):
        existing = make_transaction(account_id, date(2024, 3, 10), "Gym", "-30.00")
        later = make_transaction(account_id, date(2024, 3, 14), "Gym", "-30.00")
        assert not DuplicateDetector().is_duplicate(later, existing)

    def test_best_duplicate_wins(self, account_id):
        near = make_transaction(account_id, date(2024, 3, 11), "Gym", "-30.00")
        far = make_transaction(account_id, date(2024, 3, 13), "Gym", "-30.00")
        candidate = make_transaction(account_id, date(2024, 3, 10), "Gym", "-30.00")

        match = DuplicateDetector().find_duplicate(candidate, [far, near], row_index=4)
        assert match.duplicate_of_id == near.id
        assert match.row_index == 4


class TestFilterBatch:
    """Tests for batch filtering."""

    def test_batch_rows_not_compared_with_each_other(self, account_id):
        """Test that two identical coffees in one batch are both kept."""
        first = make_transaction(account_id, date(2024, 3, 10), "Blue Bottle", "-5.00")
        second = make_transaction(account_id, date(2024, 3, 10), "Blue Bottle", "-5.00")

        result = DuplicateDetector().filter_batch([first, second], [])

        assert result.accepted_count == 2
        assert result.duplicate_count == 0

    def test_splits_accepted_and_duplicates(self, account_id):
        existing = make_transaction(account_id, date(2024, 3, 10), "Blue Bottle", "-5.00")
        repeat = make_transaction(account_id, date(2024, 3, 11), "Blue Bottle", "-5.00")
        fresh = make_transaction(account_id, date(2024, 3, 11), "Whole Foods", "-82.10")

        result = DuplicateDetector().filter_batch([repeat, fresh], [existing])

        assert [t.id for t in result.accepted] == [fresh.id]
        assert result.duplicates[0].row_index == 0
        assert result.duplicates[0].candidate_id == repeat.id

    def test_disabled_accepts_everything(self, account_id):
        existing = make_transaction(account_id, date(2024, 3, 10), "Blue Bottle", "-5.00")
        repeat = make_transaction(account_id, date(2024, 3, 10), "Blue Bottle", "-5.00")

        detector = DuplicateDetector(DuplicateDetectionSettings(enabled=False))
        result = detector.filter_batch([repeat], [existing])

        assert not detector.enabled
        assert result.accepted_count == 1

    def test_lookup_window(self, account_id):
        rows = [
            make_transaction(account_id, date(2024, 3, 10), "A", "-1.00"),
            make_transaction(account_id, date(2024, 3, 20), "B", "-1.00"),
        ]
        detector = DuplicateDetector()
        assert detector.lookup_window(rows) == (date(2024, 3, 2), date(2024, 3, 28))
        assert detector.lookup_window([]) is None

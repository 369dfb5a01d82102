"""Tests for match state transitions."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from budget_recon.matching.lifecycle import (
    IncompatibleCurrencyError,
    InvalidTransitionError,
    MatchConflictError,
    accept,
    active_matches,
    manual_match,
    reject,
    unlink,
)
from budget_recon.models.reconciliation import (
    MatchSource,
    MatchStatus,
    ReconciliationMatch,
)
from budget_recon.models.series import Money
from budget_recon.recurrence.projector import project_instances

from tests.conftest import make_transaction


def _suggestion(transaction_id, series_id, instance_date, status=MatchStatus.SUGGESTED):
    return ReconciliationMatch(
        transaction_id=transaction_id,
        series_id=series_id,
        instance_date=instance_date,
        confidence_score=0.7,
        status=status,
        amount_variance=Decimal("-2.00"),
        date_offset_days=2,
    )


@pytest.fixture
def may_instance(utility_series):
    return next(project_instances(utility_series, [], date(2024, 5, 15), date(2024, 5, 15)))


class TestAcceptReject:
    """Tests for accept and reject."""

    def test_accept_suggestion(self, utility_series):
        suggestion = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15))
        accepted = accept(suggestion, [suggestion])

        assert accepted.id == suggestion.id
        assert accepted.status == MatchStatus.ACCEPTED
        assert accepted.resolved_at is not None
        assert suggestion.status == MatchStatus.SUGGESTED

    def test_reject_suggestion(self, utility_series):
        suggestion = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15))
        rejected = reject(suggestion)
        assert rejected.status == MatchStatus.REJECTED
        assert rejected.is_resolved

    @pytest.mark.parametrize("status", [
        MatchStatus.ACCEPTED,
        MatchStatus.AUTO_MATCHED,
        MatchStatus.REJECTED,
    ])
    def test_terminal_states(self, utility_series, status):
        """Test that only SUGGESTED records can be decided."""
        match = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15), status=status)
        with pytest.raises(InvalidTransitionError):
            accept(match)
        with pytest.raises(InvalidTransitionError):
            reject(match)

    def test_accept_second_suggestion_for_transaction_conflicts(self, utility_series):
        transaction_id = uuid4()
        first = _suggestion(transaction_id, utility_series.id, date(2024, 5, 15))
        second = _suggestion(transaction_id, utility_series.id, date(2024, 6, 15))
        accepted = accept(first, [first, second])

        with pytest.raises(MatchConflictError) as exc_info:
            accept(second, [accepted, second])
        assert exc_info.value.conflicting_match_id == accepted.id

    def test_accept_superseded_suggestion(self, utility_series):
        suggestion = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15))
        replacement = _suggestion(
            suggestion.transaction_id, utility_series.id, date(2024, 5, 15), MatchStatus.ACCEPTED
        ).model_copy(update={"supersedes_id": suggestion.id})

        with pytest.raises(InvalidTransitionError):
            accept(suggestion, [suggestion, replacement])


class TestManualMatch:
    """Tests for manual linking."""

    def test_manual_link(self, acme_transaction, may_instance):
        linked = manual_match(acme_transaction, may_instance)

        assert linked.status == MatchStatus.ACCEPTED
        assert linked.source == MatchSource.MANUAL
        assert linked.confidence_score == 1.0
        assert linked.amount_variance == Decimal("-2.00")
        assert linked.date_offset_days == 2
        assert linked.supersedes_id is None

    def test_manual_link_supersedes_rejection(self, acme_transaction, may_instance):
        rejected = _suggestion(
            acme_transaction.id, may_instance.series_id, may_instance.scheduled_date,
            MatchStatus.REJECTED,
        )
        linked = manual_match(acme_transaction, may_instance, [rejected])

        assert linked.supersedes_id == rejected.id
        assert active_matches([rejected, linked]) == [linked]

    def test_manual_link_overwrites_auto_match(self, acme_transaction, may_instance):
        """Test that confirming an auto-matched pair replaces it with a manual link."""
        auto = _suggestion(
            acme_transaction.id, may_instance.series_id, may_instance.scheduled_date,
            MatchStatus.AUTO_MATCHED,
        )
        linked = manual_match(acme_transaction, may_instance, [auto])

        assert linked.source == MatchSource.MANUAL
        assert linked.supersedes_id == auto.id
        assert active_matches([auto, linked]) == [linked]

    def test_occurrence_already_matched(self, account_id, acme_transaction, may_instance):
        """Test that a second transaction cannot take a matched occurrence."""
        first = accept(_suggestion(
            acme_transaction.id, may_instance.series_id, may_instance.scheduled_date
        ))
        other = make_transaction(account_id, date(2024, 5, 16), "ACME Utilities", "-50.00")

        with pytest.raises(MatchConflictError):
            manual_match(other, may_instance, [first])

    def test_currency_mismatch(self, acme_transaction, may_instance):
        euros = acme_transaction.model_copy(
            update={"amount": Money(amount=Decimal("-52.00"), currency="EUR")}
        )
        with pytest.raises(IncompatibleCurrencyError):
            manual_match(euros, may_instance)


class TestUnlink:
    """Tests for unlinking a positive match."""

    def test_unlink_creates_superseding_rejection(self, utility_series):
        accepted = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.ACCEPTED)
        undone = unlink(accepted, [accepted])

        assert undone.status == MatchStatus.REJECTED
        assert undone.source == MatchSource.MANUAL
        assert undone.supersedes_id == accepted.id
        assert undone.pair_key == accepted.pair_key
        assert active_matches([accepted, undone]) == [undone]

    def test_unlink_frees_both_sides(self, account_id, acme_transaction, may_instance):
        """Test that after unlinking, the occurrence can be linked to another transaction."""
        accepted = manual_match(acme_transaction, may_instance)
        undone = unlink(accepted, [accepted])
        other = make_transaction(account_id, date(2024, 5, 15), "ACME Utilities", "-50.00")

        relinked = manual_match(other, may_instance, [accepted, undone])
        assert relinked.status == MatchStatus.ACCEPTED

    def test_unlink_suggestion_rejected(self, utility_series):
        suggestion = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15))
        with pytest.raises(InvalidTransitionError):
            unlink(suggestion)

    def test_unlink_twice(self, utility_series):
        accepted = _suggestion(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.AUTO_MATCHED)
        undone = unlink(accepted, [accepted])
        with pytest.raises(InvalidTransitionError):
            unlink(accepted, [accepted, undone])

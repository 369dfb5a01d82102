"""Tests for the in-memory storage implementation."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from budget_recon.models.audit import AuditEventBuilder
from budget_recon.models.reconciliation import MatchStatus, ReconciliationMatch
from budget_recon.models.series import InstanceException
from budget_recon.services.storage import (
    ConflictError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryMatchStore,
    InMemorySeriesStore,
    InMemoryTransactionSource,
    NotFoundError,
)

from tests.conftest import make_series, make_transaction


def _record(transaction_id, series_id, instance_date, status, supersedes_id=None):
    return ReconciliationMatch(
        transaction_id=transaction_id,
        series_id=series_id,
        instance_date=instance_date,
        confidence_score=0.9,
        status=status,
        amount_variance=Decimal("0"),
        date_offset_days=0,
        supersedes_id=supersedes_id,
    )


class TestSeriesStore:
    """Tests for InMemorySeriesStore."""

    @pytest.mark.asyncio
    async def test_active_series_filtered_and_ordered(self, account_id):
        store = InMemorySeriesStore()
        newer = make_series(account_id, created_offset_minutes=5)
        older = make_series(account_id)
        inactive = make_series(account_id, is_active=False)
        elsewhere = make_series(uuid4())
        store.add_series(newer, older, inactive, elsewhere)

        found = await store.get_active_series(account_id)

        assert [s.id for s in found] == [older.id, newer.id]
        assert len(await store.get_active_series()) == 3

    @pytest.mark.asyncio
    async def test_exception_upsert_by_occurrence(self, utility_series):
        store = InMemorySeriesStore()
        store.add_series(utility_series)
        first = InstanceException.skipped(utility_series.id, date(2024, 3, 15))
        second = InstanceException.modified(
            utility_series.id, date(2024, 3, 15), modified_date=date(2024, 3, 18)
        )

        await store.save_exception(first)
        await store.save_exception(second)

        assert await store.get_exceptions(utility_series.id) == [second]

    @pytest.mark.asyncio
    async def test_exception_for_unknown_series(self):
        store = InMemorySeriesStore()
        with pytest.raises(NotFoundError):
            await store.save_exception(InstanceException.skipped(uuid4(), date(2024, 3, 15)))

    @pytest.mark.asyncio
    async def test_generated_keys(self, utility_series):
        store = InMemorySeriesStore()
        transaction_id = uuid4()
        await store.mark_instance_generated(utility_series.id, date(2024, 3, 15), transaction_id)

        keys = await store.get_generated_instance_keys(
            utility_series.id, date(2024, 3, 1), date(2024, 3, 31)
        )
        assert keys == {date(2024, 3, 15): transaction_id}
        assert await store.get_generated_instance_keys(
            utility_series.id, date(2024, 4, 1), date(2024, 4, 30)
        ) == {}

        assert await store.clear_instance_generated(utility_series.id, date(2024, 3, 15))
        assert not await store.clear_instance_generated(utility_series.id, date(2024, 3, 15))


class TestTransactionSource:
    """Tests for InMemoryTransactionSource."""

    @pytest.mark.asyncio
    async def test_add_rejects_existing_id(self, acme_transaction):
        source = InMemoryTransactionSource()
        await source.add_transactions([acme_transaction])
        with pytest.raises(DuplicateError):
            await source.add_transactions([acme_transaction])

    @pytest.mark.asyncio
    async def test_list_filters(self, account_id, acme_transaction):
        source = InMemoryTransactionSource()
        early = make_transaction(account_id, date(2024, 5, 1), "Coffee", "-4.00")
        other = make_transaction(uuid4(), date(2024, 5, 10), "Coffee", "-4.00")
        source.add(acme_transaction, early, other)

        found = await source.list_transactions(account_id=account_id)
        assert [t.id for t in found] == [early.id, acme_transaction.id]

        windowed = await source.list_transactions(
            date_from=date(2024, 5, 5), date_to=date(2024, 5, 15)
        )
        assert [t.id for t in windowed] == [other.id]

        by_id = await source.list_transactions(transaction_ids=[other.id, uuid4()])
        assert [t.id for t in by_id] == [other.id]

    @pytest.mark.asyncio
    async def test_link_and_clear(self, utility_series, acme_transaction):
        source = InMemoryTransactionSource()
        source.add(acme_transaction)

        await source.link_transaction(acme_transaction.id, utility_series.id, date(2024, 5, 15))
        linked = await source.get_transaction(acme_transaction.id)
        assert linked.is_linked
        assert await source.list_transactions(unlinked_only=True) == []

        await source.clear_link(acme_transaction.id)
        assert not (await source.get_transaction(acme_transaction.id)).is_linked

    @pytest.mark.asyncio
    async def test_link_unknown_transaction(self):
        with pytest.raises(NotFoundError):
            await InMemoryTransactionSource().link_transaction(uuid4(), uuid4(), date(2024, 1, 1))


class TestMatchStore:
    """Tests for InMemoryMatchStore."""

    @pytest.mark.asyncio
    async def test_second_positive_match_for_occurrence(self, utility_series):
        """Test that the store enforces one transaction per occurrence."""
        store = InMemoryMatchStore()
        first = _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.ACCEPTED)
        second = _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.AUTO_MATCHED)

        await store.add_match(first)
        with pytest.raises(ConflictError):
            await store.add_match(second)

    @pytest.mark.asyncio
    async def test_suggestions_do_not_conflict(self, utility_series):
        store = InMemoryMatchStore()
        await store.add_match(
            _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.ACCEPTED)
        )
        await store.add_match(
            _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.SUGGESTED)
        )
        assert len(await store.list_matches(series_id=utility_series.id)) == 2

    @pytest.mark.asyncio
    async def test_same_pair_twice(self, utility_series):
        store = InMemoryMatchStore()
        transaction_id = uuid4()
        await store.add_match(
            _record(transaction_id, utility_series.id, date(2024, 5, 15), MatchStatus.REJECTED)
        )
        with pytest.raises(DuplicateError):
            await store.add_match(
                _record(transaction_id, utility_series.id, date(2024, 5, 15), MatchStatus.SUGGESTED)
            )

    @pytest.mark.asyncio
    async def test_supersede_only_once(self, utility_series):
        store = InMemoryMatchStore()
        accepted = _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.ACCEPTED)
        await store.add_match(accepted)

        undo = _record(
            accepted.transaction_id, utility_series.id, date(2024, 5, 15),
            MatchStatus.REJECTED, supersedes_id=accepted.id,
        )
        await store.add_match(undo)

        again = undo.model_copy(update={"id": uuid4()})
        with pytest.raises(ConflictError):
            await store.add_match(again)

        active = await store.list_matches(include_superseded=False)
        assert [m.id for m in active] == [undo.id]

    @pytest.mark.asyncio
    async def test_transition_check_and_set(self, utility_series):
        store = InMemoryMatchStore()
        suggestion = _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.SUGGESTED)
        await store.add_match(suggestion)

        accepted = suggestion.model_copy(update={"status": MatchStatus.ACCEPTED})
        await store.transition_match(accepted, MatchStatus.SUGGESTED)
        assert (await store.get_match(suggestion.id)).status == MatchStatus.ACCEPTED

        rejected = suggestion.model_copy(update={"status": MatchStatus.REJECTED})
        with pytest.raises(ConflictError):
            await store.transition_match(rejected, MatchStatus.SUGGESTED)

    @pytest.mark.asyncio
    async def test_transition_unknown(self, utility_series):
        record = _record(uuid4(), utility_series.id, date(2024, 5, 15), MatchStatus.ACCEPTED)
        with pytest.raises(NotFoundError):
            await InMemoryMatchStore().transition_match(record, MatchStatus.SUGGESTED)


class TestAuditStorage:
    """Tests for InMemoryAuditStorage."""

    @pytest.mark.asyncio
    async def test_queries(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        match_id = uuid4()
        first = AuditEventBuilder.match_conflict(match_id, "taken", correlation_id)
        second = AuditEventBuilder.match_conflict(None, "taken again")
        await storage.append_event(first)
        await storage.append_event(second)

        assert await storage.get_events_by_correlation_id(correlation_id) == [first]
        assert await storage.get_events_by_entity("match", match_id) == [first]
        assert await storage.get_recent_events(limit=1) == [second]

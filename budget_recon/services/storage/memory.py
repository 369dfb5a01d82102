"""
In-Memory Storage Implementation

Reference implementation of the storage interfaces, used by the tests and
by callers embedding the engines without a database.

Writes that must be atomic (match check-and-set, exception upsert) run
under an asyncio.Lock, the in-process equivalent of a database
transaction with a unique constraint.
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

from budget_recon.matching.lifecycle import (
    MatchConflictError,
    active_matches,
    check_one_to_one,
)
from budget_recon.models.audit import AuditEvent
from budget_recon.models.reconciliation import MatchStatus, ReconciliationMatch
from budget_recon.models.series import (
    InstanceException,
    RecurringSeries,
    RecurringTransferSeries,
)
from budget_recon.models.transaction import ImportedTransaction
from budget_recon.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    MatchStoreInterface,
    NotFoundError,
    SeriesStoreInterface,
    TransactionSourceInterface,
)


class InMemorySeriesStore(SeriesStoreInterface):
    """Series, transfer series, exceptions and realized occurrences."""

    def __init__(self):
        self._series: dict[UUID, RecurringSeries] = {}
        self._transfers: dict[UUID, RecurringTransferSeries] = {}
        self._exceptions: dict[tuple[UUID, date], InstanceException] = {}
        self._generated: dict[tuple[UUID, date], UUID] = {}
        self._lock = asyncio.Lock()

    def add_series(self, *series: RecurringSeries) -> None:
        """Seed series synchronously (tests, fixtures)."""
        for s in series:
            self._series[s.id] = s

    def add_transfer_series(self, *series: RecurringTransferSeries) -> None:
        for s in series:
            self._transfers[s.id] = s

    def add_exceptions(self, *exceptions: InstanceException) -> None:
        for e in exceptions:
            self._exceptions[(e.series_id, e.original_date)] = e

    async def save_series(self, series: RecurringSeries) -> bool:
        self._series[series.id] = series
        return True

    async def get_series(self, series_id: UUID) -> Optional[RecurringSeries]:
        return self._series.get(series_id)

    async def get_active_series(
        self,
        account_id: Optional[UUID] = None,
    ) -> list[RecurringSeries]:
        found = [
            s for s in self._series.values()
            if s.is_active and (account_id is None or s.account_id == account_id)
        ]
        return sorted(found, key=lambda s: (s.created_at, s.id))

    async def save_transfer_series(self, series: RecurringTransferSeries) -> bool:
        self._transfers[series.id] = series
        return True

    async def get_transfer_series(
        self,
        series_id: UUID,
    ) -> Optional[RecurringTransferSeries]:
        return self._transfers.get(series_id)

    async def get_active_transfer_series(
        self,
        account_id: Optional[UUID] = None,
    ) -> list[RecurringTransferSeries]:
        found = [
            s for s in self._transfers.values()
            if s.is_active and (
                account_id is None
                or account_id in (s.source_account_id, s.destination_account_id)
            )
        ]
        return sorted(found, key=lambda s: (s.created_at, s.id))

    async def get_exceptions(self, series_id: UUID) -> list[InstanceException]:
        found = [e for (sid, _), e in self._exceptions.items() if sid == series_id]
        return sorted(found, key=lambda e: e.original_date)

    async def save_exception(self, exception: InstanceException) -> bool:
        if exception.series_id not in self._series and exception.series_id not in self._transfers:
            raise NotFoundError(f"Series {exception.series_id} not found")
        async with self._lock:
            self._exceptions[(exception.series_id, exception.original_date)] = exception
        return True

    async def get_generated_instance_keys(
        self,
        series_id: UUID,
        window_start: date,
        window_end: date,
    ) -> dict[date, UUID]:
        return {
            d: txn_id
            for (sid, d), txn_id in self._generated.items()
            if sid == series_id and window_start <= d <= window_end
        }

    async def mark_instance_generated(
        self,
        series_id: UUID,
        instance_date: date,
        transaction_id: UUID,
    ) -> bool:
        async with self._lock:
            self._generated[(series_id, instance_date)] = transaction_id
        return True

    async def clear_instance_generated(
        self,
        series_id: UUID,
        instance_date: date,
    ) -> bool:
        async with self._lock:
            return self._generated.pop((series_id, instance_date), None) is not None


class InMemoryTransactionSource(TransactionSourceInterface):
    """Imported transactions keyed by id."""

    def __init__(self):
        self._transactions: dict[UUID, ImportedTransaction] = {}
        self._lock = asyncio.Lock()

    def add(self, *transactions: ImportedTransaction) -> None:
        """Seed transactions synchronously (tests, fixtures)."""
        for t in transactions:
            self._transactions[t.id] = t

    async def add_transactions(self, transactions: list[ImportedTransaction]) -> int:
        async with self._lock:
            for t in transactions:
                if t.id in self._transactions:
                    raise DuplicateError(f"Transaction {t.id} already exists")
            for t in transactions:
                self._transactions[t.id] = t
        return len(transactions)

    async def get_transaction(self, transaction_id: UUID) -> Optional[ImportedTransaction]:
        return self._transactions.get(transaction_id)

    async def list_transactions(
        self,
        transaction_ids: Optional[list[UUID]] = None,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        unlinked_only: bool = False,
    ) -> list[ImportedTransaction]:
        if transaction_ids is not None:
            pool = [self._transactions[i] for i in transaction_ids if i in self._transactions]
        else:
            pool = list(self._transactions.values())

        found = [
            t for t in pool
            if (account_id is None or t.account_id == account_id)
            and (date_from is None or t.posted_date >= date_from)
            and (date_to is None or t.posted_date <= date_to)
            and (not unlinked_only or not t.is_linked)
        ]
        return sorted(found, key=lambda t: (t.posted_date, t.id))

    async def find_for_duplicate_detection(
        self,
        account_id: UUID,
        date_from: date,
        date_to: date,
    ) -> list[ImportedTransaction]:
        return await self.list_transactions(
            account_id=account_id,
            date_from=date_from,
            date_to=date_to,
        )

    async def link_transaction(
        self,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
    ) -> bool:
        async with self._lock:
            current = self._transactions.get(transaction_id)
            if current is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            self._transactions[transaction_id] = current.model_copy(update={
                "recurring_series_id": series_id,
                "recurring_instance_date": instance_date,
            })
        return True

    async def clear_link(self, transaction_id: UUID) -> bool:
        async with self._lock:
            current = self._transactions.get(transaction_id)
            if current is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            self._transactions[transaction_id] = current.model_copy(update={
                "recurring_series_id": None,
                "recurring_instance_date": None,
            })
        return True


class InMemoryMatchStore(MatchStoreInterface):
    """
    Match records with atomic one-to-one enforcement.

    Records are never deleted. A superseded record stays readable but no
    longer counts as active.
    """

    def __init__(self):
        self._matches: dict[UUID, ReconciliationMatch] = {}
        self._lock = asyncio.Lock()

    def add(self, *matches: ReconciliationMatch) -> None:
        """Seed matches synchronously, without checks (tests, fixtures)."""
        for m in matches:
            self._matches[m.id] = m

    def _is_superseded(self, match_id: UUID) -> bool:
        return any(m.supersedes_id == match_id for m in self._matches.values())

    def _check_one_to_one(self, match: ReconciliationMatch) -> None:
        if not match.is_positive:
            return
        try:
            check_one_to_one(match, self._matches.values())
        except MatchConflictError as e:
            raise ConflictError(str(e)) from e

    async def add_match(self, match: ReconciliationMatch) -> bool:
        async with self._lock:
            if match.id in self._matches:
                raise DuplicateError(f"Match {match.id} already exists")

            if match.supersedes_id is not None:
                if match.supersedes_id not in self._matches:
                    raise NotFoundError(f"Match {match.supersedes_id} not found")
                if self._is_superseded(match.supersedes_id):
                    raise ConflictError(
                        f"Match {match.supersedes_id} was already superseded"
                    )

            for other in active_matches(self._matches.values()):
                if other.pair_key == match.pair_key and other.id != match.supersedes_id:
                    raise DuplicateError(
                        f"Pair already has active match {other.id}"
                    )

            self._check_one_to_one(match)
            self._matches[match.id] = match
        return True

    async def get_match(self, match_id: UUID) -> Optional[ReconciliationMatch]:
        return self._matches.get(match_id)

    async def transition_match(
        self,
        updated: ReconciliationMatch,
        expected_status: MatchStatus,
    ) -> bool:
        async with self._lock:
            stored = self._matches.get(updated.id)
            if stored is None:
                raise NotFoundError(f"Match {updated.id} not found")
            if stored.status != expected_status:
                raise ConflictError(
                    f"Match {updated.id} is {stored.status.value}, "
                    f"expected {expected_status.value}"
                )
            if self._is_superseded(updated.id):
                raise ConflictError(f"Match {updated.id} was superseded")

            self._check_one_to_one(updated)
            self._matches[updated.id] = updated
        return True

    async def list_matches(
        self,
        status: Optional[MatchStatus] = None,
        transaction_id: Optional[UUID] = None,
        series_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        include_superseded: bool = True,
    ) -> list[ReconciliationMatch]:
        pool = (
            list(self._matches.values())
            if include_superseded
            else active_matches(self._matches.values())
        )
        found = [
            m for m in pool
            if (status is None or m.status == status)
            and (transaction_id is None or m.transaction_id == transaction_id)
            and (series_id is None or m.series_id == series_id)
            and (date_from is None or m.instance_date >= date_from)
            and (date_to is None or m.instance_date <= date_to)
        ]
        return sorted(found, key=lambda m: (m.created_at, m.id))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]

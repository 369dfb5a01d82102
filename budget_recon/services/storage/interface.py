"""
Abstract Storage Interface

DESIGN DECISION: The engines never touch storage. These interfaces are the
seams through which the orchestrator loads series, exceptions and
transactions and persists match decisions. This allows us to:
1. Plug in any database without touching the engines
2. Use in-memory storage for testing
3. Enforce the one-to-one matching rule where concurrent writers meet

The interface is intentionally small - just the operations the
projection and reconciliation flows need.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from budget_recon.models.audit import AuditEvent
from budget_recon.models.reconciliation import MatchStatus, ReconciliationMatch
from budget_recon.models.series import (
    InstanceException,
    RecurringSeries,
    RecurringTransferSeries,
)
from budget_recon.models.transaction import ImportedTransaction


class SeriesStoreInterface(ABC):
    """
    Abstract interface for series, exceptions and realized occurrences.
    """

    @abstractmethod
    async def save_series(self, series: RecurringSeries) -> bool:
        """Insert or replace a series."""
        pass

    @abstractmethod
    async def get_series(self, series_id: UUID) -> Optional[RecurringSeries]:
        """
        Retrieve a series by its ID.

        Returns:
            The series if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_active_series(
        self,
        account_id: Optional[UUID] = None,
    ) -> list[RecurringSeries]:
        """
        List active series, optionally for one account.

        Returns:
            Series ordered by creation time
        """
        pass

    @abstractmethod
    async def save_transfer_series(self, series: RecurringTransferSeries) -> bool:
        """Insert or replace a transfer series."""
        pass

    @abstractmethod
    async def get_transfer_series(
        self,
        series_id: UUID,
    ) -> Optional[RecurringTransferSeries]:
        """Retrieve a transfer series by its ID."""
        pass

    @abstractmethod
    async def get_active_transfer_series(
        self,
        account_id: Optional[UUID] = None,
    ) -> list[RecurringTransferSeries]:
        """
        List active transfer series touching an account (either leg).
        """
        pass

    @abstractmethod
    async def get_exceptions(self, series_id: UUID) -> list[InstanceException]:
        """All exceptions of a series, ordered by original date."""
        pass

    @abstractmethod
    async def save_exception(self, exception: InstanceException) -> bool:
        """
        Insert or replace the exception for (series_id, original_date).

        Raises:
            NotFoundError: If the series doesn't exist
        """
        pass

    @abstractmethod
    async def get_generated_instance_keys(
        self,
        series_id: UUID,
        window_start: date,
        window_end: date,
    ) -> dict[date, UUID]:
        """
        Occurrences in the window that already have a real transaction.

        Returns:
            Mapping of scheduled date to transaction id
        """
        pass

    @abstractmethod
    async def mark_instance_generated(
        self,
        series_id: UUID,
        instance_date: date,
        transaction_id: UUID,
    ) -> bool:
        """Record that an occurrence is realized by a transaction."""
        pass

    @abstractmethod
    async def clear_instance_generated(
        self,
        series_id: UUID,
        instance_date: date,
    ) -> bool:
        """Forget that an occurrence is realized."""
        pass


class TransactionSourceInterface(ABC):
    """
    Abstract interface for imported transactions.
    """

    @abstractmethod
    async def add_transactions(self, transactions: list[ImportedTransaction]) -> int:
        """
        Insert imported transactions.

        Returns:
            Number of transactions inserted

        Raises:
            DuplicateError: If a transaction id already exists
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[ImportedTransaction]:
        """Retrieve a transaction by its ID."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        transaction_ids: Optional[list[UUID]] = None,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        unlinked_only: bool = False,
    ) -> list[ImportedTransaction]:
        """
        List transactions with optional filters, ordered by posted date.
        """
        pass

    @abstractmethod
    async def find_for_duplicate_detection(
        self,
        account_id: UUID,
        date_from: date,
        date_to: date,
    ) -> list[ImportedTransaction]:
        """Existing transactions of an account posted in [date_from, date_to]."""
        pass

    @abstractmethod
    async def link_transaction(
        self,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
    ) -> bool:
        """
        Mark a transaction as realizing an occurrence.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def clear_link(self, transaction_id: UUID) -> bool:
        """Remove a transaction's occurrence link."""
        pass


class MatchStoreInterface(ABC):
    """
    Abstract interface for reconciliation matches.

    CRITICAL: Implementations enforce the one-to-one rule atomically.
    A write that would give a transaction or an occurrence a second
    active ACCEPTED/AUTO_MATCHED match raises ConflictError.
    """

    @abstractmethod
    async def add_match(self, match: ReconciliationMatch) -> bool:
        """
        Insert a new match record.

        If match.supersedes_id is set, the referenced record stops being
        active in the same atomic step.

        Raises:
            ConflictError: If the one-to-one rule would be broken, or the
                superseded record was already superseded
            DuplicateError: If the pair already has an active record that
                this one does not supersede
        """
        pass

    @abstractmethod
    async def get_match(self, match_id: UUID) -> Optional[ReconciliationMatch]:
        """Retrieve a match by its ID."""
        pass

    @abstractmethod
    async def transition_match(
        self,
        updated: ReconciliationMatch,
        expected_status: MatchStatus,
    ) -> bool:
        """
        Replace a stored match only if its status is still expected_status.

        Raises:
            NotFoundError: If the match doesn't exist
            ConflictError: If the stored status changed, the record was
                superseded, or the one-to-one rule would be broken
        """
        pass

    @abstractmethod
    async def list_matches(
        self,
        status: Optional[MatchStatus] = None,
        transaction_id: Optional[UUID] = None,
        series_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        include_superseded: bool = True,
    ) -> list[ReconciliationMatch]:
        """
        List matches with optional filters, ordered by creation time.

        Args:
            status: Filter by status
            transaction_id: Filter by transaction
            series_id: Filter by series
            date_from: Instance date on or after
            date_to: Instance date on or before
            include_superseded: Also return records replaced by later ones
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one find-matches run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'match', 'series')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(StorageError):
    """A check-and-set write lost against a concurrent change."""
    pass


class StorageUnavailableError(StorageError):
    """Could not reach the storage backend. Safe to retry."""
    pass

"""
Main Orchestrator for Budget Reconciliation

This module ties together all the components and defines the
end-to-end flows for:
1. Recurrence (series → projected occurrences, past-due detection, exceptions)
2. Reconciliation (transactions + occurrences → matches → user decisions)
3. Import (bank rows → duplicate check → stored transactions)

DESIGN DECISION: The engines are pure; the orchestrator does all I/O.
- Series, exceptions and transactions are loaded here and passed in
- Match decisions are persisted with check-and-set writes
- Every decision is audited

This is the "glue" that keeps the one-to-one matching rule intact
even when two requests race for the same transaction or occurrence.
"""

import asyncio
import calendar
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional
from uuid import UUID

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from budget_recon.audit import AuditLogger, configure_logging, create_correlation_id
from budget_recon.config import (
    DuplicateDetectionSettings,
    MatchingSettings,
    ProjectionSettings,
    Settings,
    get_settings,
)
from budget_recon.imports import DuplicateDetector
from budget_recon.matching import (
    InvalidTransitionError,
    MatchConflictError,
    accept,
    find_candidates,
    manual_match,
    propose_matches,
    reject,
    summarize_reconciliation,
    unlink,
)
from budget_recon.models.reconciliation import (
    BulkActionResult,
    BulkItemOutcome,
    FindMatchesResult,
    MatchingTolerances,
    MatchStatus,
    ReconciliationMatch,
    ReconciliationStatusReport,
    TransactionCandidates,
)
from budget_recon.models.series import (
    InstanceException,
    PastDueSummary,
    ProjectedInstance,
    ProjectedTransferInstance,
    RecurringSeries,
)
from budget_recon.models.transaction import DuplicateCheckResult, ImportedTransaction
from budget_recon.models.validation import ValidationResult
from budget_recon.recurrence import (
    RecurrenceProjector,
    find_past_due_transfers,
    project_instances,
    project_transfer_instances,
    summarize_past_due,
    transfer_leg_instances,
)
from budget_recon.services.storage import (
    ConflictError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryMatchStore,
    InMemorySeriesStore,
    InMemoryTransactionSource,
    MatchStoreInterface,
    NotFoundError,
    SeriesStoreInterface,
    StorageError,
    StorageUnavailableError,
    TransactionSourceInterface,
)
from budget_recon.validation import SeriesValidator


logger = structlog.get_logger(__name__)

# Transient backend failures only; conflicts are never retried.
transient_retry = retry(
    retry=retry_if_exception_type(StorageUnavailableError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _sort_instances(instances: list[ProjectedInstance]) -> list[ProjectedInstance]:
    instances.sort(key=lambda i: (i.scheduled_date, i.series_created_at, i.series_id))
    return instances


class RecurrenceFlow:
    """
    Orchestrates projection for stored series.

    Flow:
    1. Load active series (and transfer series) for an account
    2. Load their exceptions and already-realized occurrences
    3. Project → occurrences, or past-due occurrences as of a date

    Transfer occurrences are flattened into one instance per leg. Without
    an account filter only the source leg is kept, so a transfer is
    counted once.
    """

    def __init__(
        self,
        series_store: SeriesStoreInterface,
        transaction_source: Optional[TransactionSourceInterface] = None,
        projector: Optional[RecurrenceProjector] = None,
        validator: Optional[SeriesValidator] = None,
        settings: Optional[ProjectionSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._series_store = series_store
        self._transactions = transaction_source
        self._settings = settings or get_settings().projection
        self._projector = projector or RecurrenceProjector(
            self._settings.past_due_lookback_days
        )
        self._validator = validator or SeriesValidator()
        self._audit_logger = audit_logger

    async def _load_exceptions(
        self,
        series_list: Iterable,
    ) -> dict[UUID, list[InstanceException]]:
        return {s.id: await self._series_store.get_exceptions(s.id) for s in series_list}

    async def _load_generated(
        self,
        series_list: Iterable,
        window_start: date,
        window_end: date,
    ) -> dict[UUID, dict[date, UUID]]:
        return {
            s.id: await self._series_store.get_generated_instance_keys(
                s.id, window_start, window_end
            )
            for s in series_list
        }

    async def project_transfers(
        self,
        window_start: date,
        window_end: date,
        account_id: Optional[UUID] = None,
    ) -> list[ProjectedTransferInstance]:
        """Transfer occurrences in a window, both legs attached."""
        if window_start > window_end:
            return []

        transfers = await self._series_store.get_active_transfer_series(account_id)
        exceptions = await self._load_exceptions(transfers)
        generated = await self._load_generated(transfers, window_start, window_end)

        result = []
        for transfer in transfers:
            result.extend(project_transfer_instances(
                transfer,
                exceptions[transfer.id],
                window_start,
                window_end,
                generated[transfer.id],
            ))
        result.sort(key=lambda i: (i.scheduled_date, i.series_created_at, i.series_id))
        return result

    async def project_account(
        self,
        account_id: Optional[UUID],
        window_start: date,
        window_end: date,
        include_transfers: bool = True,
    ) -> list[ProjectedInstance]:
        """
        Every occurrence posting to an account in [window_start, window_end].

        Args:
            account_id: Account to project, or None for all accounts
            window_start: First scheduled date (inclusive)
            window_end: Last scheduled date (inclusive)
            include_transfers: Add the transfer legs posting to the account

        Returns:
            Instances ordered by scheduled date, then series creation time
        """
        if window_start > window_end:
            return []

        series_list = await self._series_store.get_active_series(account_id)
        exceptions = await self._load_exceptions(series_list)
        generated = await self._load_generated(series_list, window_start, window_end)
        instances = self._projector.project(
            series_list, exceptions, window_start, window_end, generated
        )

        if include_transfers:
            for transfer in await self.project_transfers(window_start, window_end, account_id):
                instances.extend(
                    transfer_leg_instances(transfer, account_id or transfer.source.account_id)
                )
            _sort_instances(instances)

        return instances

    async def past_due(
        self,
        as_of: date,
        account_id: Optional[UUID] = None,
        lookback_days: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PastDueSummary:
        """
        Occurrences that should already have posted but have no transaction.
        """
        correlation_id = correlation_id or create_correlation_id()
        lookback = lookback_days if lookback_days is not None else self._projector.lookback_days
        if lookback < 1:
            return summarize_past_due([], as_of)

        window_start = as_of - timedelta(days=lookback)
        window_end = as_of - timedelta(days=1)

        series_list = await self._series_store.get_active_series(account_id)
        exceptions = await self._load_exceptions(series_list)
        generated = await self._load_generated(series_list, window_start, window_end)
        summary = self._projector.past_due(
            series_list, exceptions, as_of, generated, lookback_days=lookback
        )
        instances = [item.instance for item in summary.items]

        for transfer in await self._past_due_transfers(as_of, lookback, account_id):
            instances.extend(
                transfer_leg_instances(transfer, account_id or transfer.source.account_id)
            )

        summary = summarize_past_due(instances, as_of)

        if self._audit_logger and summary.total_count:
            await self._audit_logger.log_past_due(
                as_of=as_of,
                count=summary.total_count,
                oldest_date=summary.oldest_date,
                correlation_id=correlation_id,
            )

        return summary

    async def _past_due_transfers(
        self,
        as_of: date,
        lookback: int,
        account_id: Optional[UUID],
    ) -> list[ProjectedTransferInstance]:
        window_start = as_of - timedelta(days=lookback)
        window_end = as_of - timedelta(days=1)
        transfers = await self._series_store.get_active_transfer_series(account_id)
        exceptions = await self._load_exceptions(transfers)
        generated = await self._load_generated(transfers, window_start, window_end)

        found = []
        for transfer in transfers:
            found.extend(find_past_due_transfers(
                transfer,
                exceptions[transfer.id],
                as_of,
                lookback,
                generated[transfer.id],
            ))
        return found

    async def auto_realize_past_due(
        self,
        as_of: date,
        account_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ImportedTransaction]:
        """
        Create the transactions of past-due occurrences.

        Does nothing unless auto-realize is enabled. A transfer occurrence
        produces one transaction per leg.

        Returns:
            The transactions created
        """
        if not self._settings.auto_realize_past_due:
            return []
        if self._transactions is None:
            raise ValueError("auto-realize needs a transaction source")

        correlation_id = correlation_id or create_correlation_id()
        lookback = self._projector.lookback_days
        if lookback < 1:
            return []

        window_start = as_of - timedelta(days=lookback)
        window_end = as_of - timedelta(days=1)
        series_list = await self._series_store.get_active_series(account_id)
        exceptions = await self._load_exceptions(series_list)
        generated = await self._load_generated(series_list, window_start, window_end)
        summary = self._projector.past_due(
            series_list, exceptions, as_of, generated, lookback_days=lookback
        )

        # (series_id, scheduled_date) -> transactions realizing it
        realized: list[tuple[UUID, date, list[ImportedTransaction]]] = []
        for item in summary.items:
            instance = item.instance
            realized.append((
                instance.series_id,
                instance.scheduled_date,
                [self._realized_transaction(instance)],
            ))

        for transfer in await self._past_due_transfers(as_of, lookback, account_id):
            realized.append((
                transfer.series_id,
                transfer.scheduled_date,
                [self._realized_transaction(leg) for leg in transfer_leg_instances(transfer)],
            ))

        created = [t for _, _, transactions in realized for t in transactions]
        if not created:
            return []

        await self._add_transactions(created)
        for series_id, instance_date, transactions in realized:
            await self._mark_generated(series_id, instance_date, transactions[0].id)
            if self._audit_logger:
                await self._audit_logger.log_instance_realized(
                    transaction_id=transactions[0].id,
                    series_id=series_id,
                    instance_date=instance_date,
                    correlation_id=correlation_id,
                )

        logger.info(
            "past_due_realized",
            as_of=as_of.isoformat(),
            occurrences=len(realized),
            transactions=len(created),
        )
        return created

    @staticmethod
    def _realized_transaction(instance: ProjectedInstance) -> ImportedTransaction:
        return ImportedTransaction(
            account_id=instance.account_id,
            posted_date=instance.effective_date,
            description=instance.description,
            amount=instance.amount,
            category_id=instance.category_id,
            recurring_series_id=instance.series_id,
            recurring_instance_date=instance.scheduled_date,
        )

    async def find_occurrence(
        self,
        series_id: UUID,
        instance_date: date,
        account_id: Optional[UUID] = None,
    ) -> ProjectedInstance:
        """
        The occurrence of a series scheduled on a date.

        For a transfer, the leg posting to account_id (source leg if None).

        Raises:
            NotFoundError: If the series is unknown, the date is not
                scheduled, or the transfer has no leg on the account
        """
        series = await self._series_store.get_series(series_id)
        if series is not None:
            found = list(project_instances(
                series,
                await self._series_store.get_exceptions(series_id),
                instance_date,
                instance_date,
                await self._series_store.get_generated_instance_keys(
                    series_id, instance_date, instance_date
                ),
            ))
        else:
            transfer = await self._series_store.get_transfer_series(series_id)
            if transfer is None:
                raise NotFoundError(f"Series {series_id} not found")
            found = []
            for occurrence in project_transfer_instances(
                transfer,
                await self._series_store.get_exceptions(series_id),
                instance_date,
                instance_date,
                await self._series_store.get_generated_instance_keys(
                    series_id, instance_date, instance_date
                ),
            ):
                found.extend(transfer_leg_instances(
                    occurrence, account_id or occurrence.source.account_id
                ))

        if not found:
            raise NotFoundError(
                f"Series {series_id} has no occurrence on {instance_date.isoformat()}"
            )
        return found[0]

    async def save_exception(
        self,
        exception: InstanceException,
        correlation_id: Optional[UUID] = None,
    ) -> ValidationResult:
        """
        Validate and store a skip or modification of one occurrence.

        Nothing is saved when validation reports errors.

        Returns:
            The validation result (check is_valid)

        Raises:
            NotFoundError: If the series doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        series = await self._series_store.get_series(exception.series_id)
        if series is None:
            series = await self._series_store.get_transfer_series(exception.series_id)
        if series is None:
            raise NotFoundError(f"Series {exception.series_id} not found")

        result = self._validator.validate(series, exception)
        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    series_id=series.id,
                    issues=[i.model_dump() for i in result.issues],
                    correlation_id=correlation_id,
                )
            return result

        await self._save_exception(exception)

        if self._audit_logger:
            await self._audit_logger.log_exception_saved(
                exception_id=exception.id,
                series_id=series.id,
                original_date=exception.original_date,
                kind=exception.kind.value,
                correlation_id=correlation_id,
            )

        return result

    async def validate_series(self, series: RecurringSeries) -> ValidationResult:
        """Validate a series definition before it is stored."""
        return self._validator.validate(series)

    @transient_retry
    async def _save_exception(self, exception: InstanceException) -> None:
        await self._series_store.save_exception(exception)

    @transient_retry
    async def _add_transactions(self, transactions: list[ImportedTransaction]) -> None:
        await self._transactions.add_transactions(transactions)

    @transient_retry
    async def _mark_generated(
        self,
        series_id: UUID,
        instance_date: date,
        transaction_id: UUID,
    ) -> None:
        await self._series_store.mark_instance_generated(series_id, instance_date, transaction_id)


class ReconciliationFlow:
    """
    Orchestrates matching of imported transactions to occurrences.

    Flow:
    1. find_matches → score unlinked transactions against projected
       occurrences, store suggestions and auto-matches
    2. accept / reject / manual link / unlink → user decisions
    3. get_reconciliation_status → matched / pending / missing per month

    A positive match (accepted or auto-matched) marks the occurrence as
    realized and links the transaction to it. Unlinking undoes both.
    """

    def __init__(
        self,
        series_store: SeriesStoreInterface,
        transaction_source: TransactionSourceInterface,
        match_store: MatchStoreInterface,
        recurrence_flow: Optional[RecurrenceFlow] = None,
        settings: Optional[MatchingSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._series_store = series_store
        self._transactions = transaction_source
        self._matches = match_store
        self._recurrence = recurrence_flow or RecurrenceFlow(
            series_store,
            transaction_source,
            audit_logger=audit_logger,
        )
        settings = settings or get_settings().matching
        self._tolerances = settings.to_tolerances()
        self._weights = settings.to_weights()
        self._audit_logger = audit_logger

    @property
    def tolerances(self) -> MatchingTolerances:
        return self._tolerances

    async def find_matches(
        self,
        transaction_ids: Optional[list[UUID]] = None,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        tolerances: Optional[MatchingTolerances] = None,
        correlation_id: Optional[UUID] = None,
    ) -> FindMatchesResult:
        """
        Suggest or auto-match occurrences for unlinked transactions.

        Args:
            transaction_ids: Transactions to match; unknown ids are reported
                as failures. If None, the account/date filters select them.
            account_id: Filter when transaction_ids is None
            date_from: Posted on or after (when transaction_ids is None)
            date_to: Posted on or before (when transaction_ids is None)
            tolerances: Override the configured tolerances for this call

        Returns:
            New match records per transaction, plus per-transaction failures
        """
        correlation_id = correlation_id or create_correlation_id()
        tolerances = tolerances or self._tolerances
        failures = []

        if transaction_ids is not None:
            transactions = await self._transactions.list_transactions(
                transaction_ids=transaction_ids
            )
            found = {t.id for t in transactions}
            for missing in dict.fromkeys(i for i in transaction_ids if i not in found):
                failures.append(BulkItemOutcome(
                    item_id=missing,
                    success=False,
                    error_code="not_found",
                    error_message=f"Transaction {missing} not found",
                ))
        else:
            transactions = await self._transactions.list_transactions(
                account_id=account_id,
                date_from=date_from,
                date_to=date_to,
                unlinked_only=True,
            )

        transactions = [t for t in transactions if not t.is_linked]
        if not transactions:
            return FindMatchesResult(failures=failures)

        by_account: dict[UUID, list[ImportedTransaction]] = defaultdict(list)
        for transaction in transactions:
            by_account[transaction.account_id].append(transaction)

        slack = timedelta(days=tolerances.date_tolerance_days)
        candidates: dict[UUID, TransactionCandidates] = {}
        for account, account_transactions in by_account.items():
            posted = [t.posted_date for t in account_transactions]
            instances = await self._recurrence.project_account(
                account, min(posted) - slack, max(posted) + slack
            )
            for transaction in account_transactions:
                # Cancellation checkpoint between transactions
                await asyncio.sleep(0)
                candidates.update(
                    find_candidates([transaction], instances, tolerances, self._weights)
                )

        existing = await self._matches.list_matches()
        proposed = propose_matches(candidates, tolerances, existing)

        matches_by_transaction: dict[UUID, list[ReconciliationMatch]] = {}
        for transaction_id, records in proposed.items():
            await asyncio.sleep(0)
            saved = []
            try:
                for record in records:
                    await self._add_match(record)
                    saved.append(record)
                    if record.is_positive:
                        await self._realize(record)
                    if self._audit_logger:
                        await self._audit_logger.log_match_created(record, correlation_id)
            except (ConflictError, DuplicateError) as e:
                failures.append(BulkItemOutcome(
                    item_id=transaction_id,
                    success=False,
                    error_code="conflict",
                    error_message=str(e),
                ))
                if self._audit_logger:
                    await self._audit_logger.log_conflict(None, str(e), correlation_id)
            except StorageError as e:
                failures.append(BulkItemOutcome(
                    item_id=transaction_id,
                    success=False,
                    error_code="storage",
                    error_message=str(e),
                ))
                if self._audit_logger:
                    await self._audit_logger.log_storage_error(
                        operation="add_match",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
            if saved:
                matches_by_transaction[transaction_id] = saved

        result = FindMatchesResult(
            matches_by_transaction=matches_by_transaction,
            failures=failures,
        )
        logger.info(
            "find_matches_completed",
            correlation_id=str(correlation_id),
            transactions=len(transactions),
            matches=result.total_matches,
            auto_matched=result.auto_matched_count,
            failures=len(failures),
        )
        return result

    async def list_suggestions(
        self,
        transaction_id: Optional[UUID] = None,
    ) -> list[ReconciliationMatch]:
        """Suggested matches still awaiting a decision."""
        return await self._matches.list_matches(
            status=MatchStatus.SUGGESTED,
            transaction_id=transaction_id,
            include_superseded=False,
        )

    async def accept_match(
        self,
        match_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationMatch:
        """
        Accept a suggested match.

        Raises:
            NotFoundError: If the match doesn't exist
            InvalidTransitionError: If the match is not SUGGESTED
            MatchConflictError / ConflictError: If the transaction or
                occurrence is already matched
            StorageError: If linking fails after the status was saved
        """
        correlation_id = correlation_id or create_correlation_id()
        match = await self._require_match(match_id)
        existing = await self._related_matches(
            match.transaction_id, match.series_id, match.instance_date
        )

        try:
            accepted = accept(match, existing)
            await self._transition(accepted, MatchStatus.SUGGESTED)
        except (MatchConflictError, ConflictError) as e:
            if self._audit_logger:
                await self._audit_logger.log_conflict(match.id, str(e), correlation_id)
            raise

        await self._realize_recorded(accepted, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_match_accepted(accepted, correlation_id)

        return accepted

    async def reject_match(
        self,
        match_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationMatch:
        """
        Reject a suggested match. The pair is never suggested again.

        Raises:
            NotFoundError: If the match doesn't exist
            InvalidTransitionError: If the match is not SUGGESTED
            ConflictError: If the match changed concurrently
        """
        correlation_id = correlation_id or create_correlation_id()
        match = await self._require_match(match_id)

        rejected = reject(match)
        try:
            await self._transition(rejected, MatchStatus.SUGGESTED)
        except ConflictError as e:
            if self._audit_logger:
                await self._audit_logger.log_conflict(match.id, str(e), correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_match_rejected(rejected, correlation_id)

        return rejected

    async def bulk_accept(
        self,
        match_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> BulkActionResult:
        """Accept many matches; each succeeds or fails on its own."""
        return await self._bulk("accept", self.accept_match, match_ids, correlation_id)

    async def bulk_reject(
        self,
        match_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> BulkActionResult:
        """Reject many matches; each succeeds or fails on its own."""
        return await self._bulk("reject", self.reject_match, match_ids, correlation_id)

    async def _bulk(
        self,
        action: str,
        operation,
        match_ids: list[UUID],
        correlation_id: Optional[UUID],
    ) -> BulkActionResult:
        correlation_id = correlation_id or create_correlation_id()
        outcomes = []

        for match_id in match_ids:
            await asyncio.sleep(0)
            try:
                match = await operation(match_id, correlation_id=correlation_id)
                outcomes.append(BulkItemOutcome(
                    item_id=match_id,
                    success=True,
                    status=match.status,
                ))
                continue
            except NotFoundError as e:
                code, message = "not_found", str(e)
            except InvalidTransitionError as e:
                code, message = "invalid_state", str(e)
            except (MatchConflictError, ConflictError) as e:
                code, message = "conflict", str(e)
            except StorageError as e:
                code, message = "storage", str(e)

            outcomes.append(BulkItemOutcome(
                item_id=match_id,
                success=False,
                error_code=code,
                error_message=message,
            ))

        result = BulkActionResult(outcomes=outcomes)
        if self._audit_logger:
            await self._audit_logger.log_bulk_completed(
                action=action,
                succeeded=result.succeeded,
                failed=result.failed,
                correlation_id=correlation_id,
            )
        return result

    async def manual_match(
        self,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationMatch:
        """
        Link a transaction to an occurrence chosen by the user.

        Raises:
            NotFoundError: If the transaction or occurrence doesn't exist,
                or the occurrence is skipped
            MatchConflictError / ConflictError: If either side is already
                linked elsewhere
            IncompatibleCurrencyError: If the currencies differ
        """
        correlation_id = correlation_id or create_correlation_id()
        transaction = await self._require_transaction(transaction_id)
        instance = await self._recurrence.find_occurrence(
            series_id, instance_date, transaction.account_id
        )
        if instance.is_skipped:
            raise NotFoundError(
                f"Occurrence {instance_date.isoformat()} of series {series_id} is skipped"
            )

        existing = await self._related_matches(transaction_id, series_id, instance_date)
        try:
            self._check_not_realized(transaction, instance)
            linked = manual_match(transaction, instance, existing)
            await self._add_match(linked)
        except (MatchConflictError, ConflictError) as e:
            if self._audit_logger:
                await self._audit_logger.log_conflict(None, str(e), correlation_id)
            raise

        await self._realize_recorded(linked, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_manual_linked(linked, correlation_id)

        return linked

    @staticmethod
    def _check_not_realized(
        transaction: ImportedTransaction,
        instance: ProjectedInstance,
    ) -> None:
        """Links made outside the match store (auto-realize) also count."""
        if transaction.is_linked and (
            transaction.recurring_series_id != instance.series_id
            or transaction.recurring_instance_date != instance.scheduled_date
        ):
            raise MatchConflictError(
                f"Transaction {transaction.id} is already linked to "
                f"series {transaction.recurring_series_id}"
            )
        if instance.is_generated and instance.generated_transaction_id not in (
            None,
            transaction.id,
        ):
            raise MatchConflictError(
                f"Occurrence {instance.scheduled_date.isoformat()} is already "
                f"realized by transaction {instance.generated_transaction_id}"
            )

    async def unlink_match(
        self,
        match_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationMatch:
        """
        Undo an accepted or auto-matched match.

        Returns:
            The new REJECTED record superseding the match

        Raises:
            NotFoundError: If the match doesn't exist
            InvalidTransitionError: If the match is not positive or was
                already superseded
            ConflictError: If another request unlinked it first
        """
        correlation_id = correlation_id or create_correlation_id()
        match = await self._require_match(match_id)
        existing = await self._related_matches(
            match.transaction_id, match.series_id, match.instance_date
        )

        record = unlink(match, existing)
        try:
            await self._add_match(record)
        except ConflictError as e:
            if self._audit_logger:
                await self._audit_logger.log_conflict(match.id, str(e), correlation_id)
            raise

        await self._release(match)

        if self._audit_logger:
            await self._audit_logger.log_unlinked(record, correlation_id)

        return record

    async def get_reconciliation_status(
        self,
        year: int,
        month: int,
        account_id: Optional[UUID] = None,
    ) -> ReconciliationStatusReport:
        """Matched / pending / missing state of a month's occurrences."""
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])

        instances = await self._recurrence.project_account(account_id, first, last)
        matches = await self._matches.list_matches(date_from=first, date_to=last)
        return summarize_reconciliation(instances, matches, year, month)

    async def _require_match(self, match_id: UUID) -> ReconciliationMatch:
        match = await self._matches.get_match(match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        return match

    async def _require_transaction(self, transaction_id: UUID) -> ImportedTransaction:
        transaction = await self._transactions.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def _related_matches(
        self,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
    ) -> list[ReconciliationMatch]:
        """Every record touching the transaction or the occurrence."""
        by_transaction = await self._matches.list_matches(transaction_id=transaction_id)
        by_instance = await self._matches.list_matches(
            series_id=series_id,
            date_from=instance_date,
            date_to=instance_date,
        )
        merged = {m.id: m for m in by_transaction + by_instance}
        return list(merged.values())

    async def _realize_recorded(self, match: ReconciliationMatch, correlation_id: UUID) -> None:
        """
        Link both sides of a saved positive match.

        The match is already stored, so a failure here leaves it positive
        with the occurrence and transaction unlinked; that state is logged
        and audited before the error propagates.
        """
        try:
            await self._realize(match)
        except StorageError as e:
            logger.error(
                "match_link_failed",
                match_id=str(match.id),
                transaction_id=str(match.transaction_id),
                series_id=str(match.series_id),
                instance_date=match.instance_date.isoformat(),
                error=str(e),
                correlation_id=str(correlation_id),
            )
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="realize_match",
                    error_message=f"Match {match.id} saved but not linked: {e}",
                    correlation_id=correlation_id,
                )
            raise

    @transient_retry
    async def _add_match(self, match: ReconciliationMatch) -> None:
        await self._matches.add_match(match)

    @transient_retry
    async def _transition(
        self,
        match: ReconciliationMatch,
        expected_status: MatchStatus,
    ) -> None:
        await self._matches.transition_match(match, expected_status)

    @transient_retry
    async def _realize(self, match: ReconciliationMatch) -> None:
        await self._series_store.mark_instance_generated(
            match.series_id, match.instance_date, match.transaction_id
        )
        await self._transactions.link_transaction(
            match.transaction_id, match.series_id, match.instance_date
        )

    @transient_retry
    async def _release(self, match: ReconciliationMatch) -> None:
        await self._series_store.clear_instance_generated(match.series_id, match.instance_date)
        await self._transactions.clear_link(match.transaction_id)


class ImportFlow:
    """
    Orchestrates storing an imported batch of bank transactions.

    Flow:
    1. Load existing transactions near the batch's dates
    2. Drop rows that duplicate an existing transaction
    3. Store the rest

    Duplicates are reported, never silently merged.
    """

    def __init__(
        self,
        transaction_source: TransactionSourceInterface,
        detector: Optional[DuplicateDetector] = None,
        settings: Optional[DuplicateDetectionSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_source
        self._detector = detector or DuplicateDetector(settings or get_settings().duplicates)
        self._audit_logger = audit_logger

    async def import_transactions(
        self,
        transactions: list[ImportedTransaction],
        correlation_id: Optional[UUID] = None,
    ) -> DuplicateCheckResult:
        """
        Store a batch, skipping duplicates of existing transactions.

        Returns:
            Accepted rows and the duplicates that were skipped
        """
        correlation_id = correlation_id or create_correlation_id()
        transactions = list(transactions)

        existing = []
        if self._detector.enabled:
            by_account: dict[UUID, list[ImportedTransaction]] = defaultdict(list)
            for transaction in transactions:
                by_account[transaction.account_id].append(transaction)
            for account_id, rows in by_account.items():
                date_from, date_to = self._detector.lookup_window(rows)
                existing.extend(await self._transactions.find_for_duplicate_detection(
                    account_id, date_from, date_to
                ))

        result = self._detector.filter_batch(transactions, existing)

        if result.accepted:
            try:
                await self._add_transactions(result.accepted)
            except StorageError as e:
                if self._audit_logger:
                    await self._audit_logger.log_storage_error(
                        operation="add_transactions",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            for duplicate in result.duplicates:
                await self._audit_logger.log_duplicate_skipped(
                    candidate_id=duplicate.candidate_id,
                    duplicate_of_id=duplicate.duplicate_of_id,
                    similarity=duplicate.similarity,
                    correlation_id=correlation_id,
                )

        logger.info(
            "import_completed",
            correlation_id=str(correlation_id),
            accepted=result.accepted_count,
            duplicates=result.duplicate_count,
        )
        return result

    @transient_retry
    async def _add_transactions(self, transactions: list[ImportedTransaction]) -> None:
        await self._transactions.add_transactions(transactions)


def create_app_components(
    settings: Optional[Settings] = None,
) -> tuple[RecurrenceFlow, ReconciliationFlow, ImportFlow]:
    """
    Factory function to create all application components.

    Wires the flows to in-memory stores. A database-backed deployment
    builds the flows the same way with its own store implementations.

    Returns:
        (recurrence_flow, reconciliation_flow, import_flow)
    """
    settings = settings or get_settings()
    configure_logging(settings.app)

    series_store = InMemorySeriesStore()
    transaction_source = InMemoryTransactionSource()
    match_store = InMemoryMatchStore()
    audit_logger = AuditLogger(InMemoryAuditStorage())

    recurrence_flow = RecurrenceFlow(
        series_store,
        transaction_source,
        settings=settings.projection,
        audit_logger=audit_logger,
    )
    reconciliation_flow = ReconciliationFlow(
        series_store,
        transaction_source,
        match_store,
        recurrence_flow=recurrence_flow,
        settings=settings.matching,
        audit_logger=audit_logger,
    )
    import_flow = ImportFlow(
        transaction_source,
        settings=settings.duplicates,
        audit_logger=audit_logger,
    )

    return recurrence_flow, reconciliation_flow, import_flow

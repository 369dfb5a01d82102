"""
Audit Logger

DESIGN DECISION: Every reconciliation decision is logged.
This provides:
1. Complete traceability of why a transaction is linked to an occurrence
2. Debugging capability when a suggestion looks wrong
3. A history the user can browse per match chain

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't fail a match decision if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_recon.config.settings import AppSettings
from budget_recon.models.audit import AuditEvent, AuditEventBuilder
from budget_recon.models.reconciliation import ReconciliationMatch
from budget_recon.services.storage import AuditStorageInterface


def configure_logging(app_settings: Optional[AppSettings] = None) -> None:
    """
    Configure structlog for local logging.

    JSON output unless the settings ask for console rendering.
    """
    json_output = app_settings.log_json if app_settings else True
    if app_settings:
        logging.getLogger().setLevel(app_settings.log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Writes every projection, matching and import decision twice:
    to the structlog output, and to an AuditStorageInterface so the
    history of a match chain can be shown to the user.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Emit one event locally and append it to storage.

        A storage failure is logged and reported as False; it never fails
        the decision being audited.
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_match_created(
        self,
        match: ReconciliationMatch,
        correlation_id: UUID,
    ) -> None:
        """Log a new suggestion or auto-match."""
        event = AuditEventBuilder.match_created(
            match_id=match.id,
            transaction_id=match.transaction_id,
            series_id=match.series_id,
            instance_date=match.instance_date,
            score=match.confidence_score,
            auto_matched=match.is_positive,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_match_accepted(
        self,
        match: ReconciliationMatch,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.match_accepted(
            match_id=match.id,
            transaction_id=match.transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_match_rejected(
        self,
        match: ReconciliationMatch,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.match_rejected(
            match_id=match.id,
            transaction_id=match.transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_manual_linked(
        self,
        match: ReconciliationMatch,
        correlation_id: UUID,
    ) -> None:
        """Log a user-chosen link."""
        event = AuditEventBuilder.manual_linked(
            match_id=match.id,
            transaction_id=match.transaction_id,
            series_id=match.series_id,
            instance_date=match.instance_date,
            supersedes_id=match.supersedes_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_unlinked(
        self,
        match: ReconciliationMatch,
        correlation_id: UUID,
    ) -> None:
        """Log the record that undid a positive match."""
        event = AuditEventBuilder.match_unlinked(
            match_id=match.id,
            superseded_id=match.supersedes_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_conflict(
        self,
        match_id: Optional[UUID],
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log a write refused by the one-to-one rule."""
        event = AuditEventBuilder.match_conflict(
            match_id=match_id,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bulk_completed(
        self,
        action: str,
        succeeded: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.bulk_action_completed(
            action=action,
            succeeded=succeeded,
            failed=failed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_duplicate_skipped(
        self,
        candidate_id: UUID,
        duplicate_of_id: UUID,
        similarity: float,
        correlation_id: UUID,
    ) -> None:
        """Log an import row dropped as a duplicate."""
        event = AuditEventBuilder.duplicate_skipped(
            candidate_id=candidate_id,
            duplicate_of_id=duplicate_of_id,
            similarity=similarity,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_past_due(
        self,
        as_of: date,
        count: int,
        oldest_date: Optional[date],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.past_due_detected(
            as_of=as_of,
            count=count,
            oldest_date=oldest_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_instance_realized(
        self,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.instance_realized(
            transaction_id=transaction_id,
            series_id=series_id,
            instance_date=instance_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_exception_saved(
        self,
        exception_id: UUID,
        series_id: UUID,
        original_date: date,
        kind: str,
        correlation_id: UUID,
    ) -> None:
        """Log a skipped or modified occurrence."""
        event = AuditEventBuilder.exception_saved(
            exception_id=exception_id,
            series_id=series_id,
            original_date=original_date,
            kind=kind,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        series_id: UUID,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.series_validation_failed(
            series_id=series_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log storage backend error."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a find-matches run).
    Pass it through all subsequent operations.
    """
    return uuid4()

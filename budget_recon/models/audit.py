"""
Audit Models for Budget Reconciliation

Every reconciliation decision is logged for audit purposes.
This provides:
1. Traceability of why a transaction is linked to an occurrence
2. Debugging information when a match looks wrong
3. Ability to reconstruct the history of a match chain

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_recon.models.series import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every decision point in projection, matching and import has its own type.
    """
    # Series maintenance
    EXCEPTION_SAVED = "exception_saved"
    SERIES_VALIDATION_FAILED = "series_validation_failed"

    # Projection
    PAST_DUE_DETECTED = "past_due_detected"
    INSTANCE_REALIZED = "instance_realized"

    # Matching
    MATCH_SUGGESTED = "match_suggested"
    MATCH_AUTO_MATCHED = "match_auto_matched"
    MATCH_ACCEPTED = "match_accepted"
    MATCH_REJECTED = "match_rejected"
    MATCH_MANUAL_LINKED = "match_manual_linked"
    MATCH_UNLINKED = "match_unlinked"
    MATCH_CONFLICT = "match_conflict"
    BULK_ACTION_COMPLETED = "bulk_action_completed"

    # Import
    DUPLICATE_SKIPPED = "duplicate_skipped"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant decision creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'match', 'series', 'transaction')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one find-matches run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user decision?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.match_accepted(match_id, transaction_id, ...)
        event = AuditEventBuilder.duplicate_skipped(candidate_id, duplicate_of_id, ...)
    """

    @staticmethod
    def exception_saved(
        exception_id: UUID,
        series_id: UUID,
        original_date: date,
        kind: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXCEPTION_SAVED,
            entity_type="exception",
            entity_id=exception_id,
            correlation_id=correlation_id,
            description=f"Occurrence {original_date.isoformat()} {kind}",
            details={
                "series_id": str(series_id),
                "original_date": original_date.isoformat(),
                "kind": kind,
            },
            is_user_action=True,
        )

    @staticmethod
    def series_validation_failed(
        series_id: UUID,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Series validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def past_due_detected(
        as_of: date,
        count: int,
        oldest_date: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAST_DUE_DETECTED,
            severity=AuditSeverity.WARNING if count else AuditSeverity.INFO,
            correlation_id=correlation_id,
            description=f"{count} past-due occurrences as of {as_of.isoformat()}",
            details={
                "as_of": as_of.isoformat(),
                "count": count,
                "oldest_date": oldest_date.isoformat() if oldest_date else None,
            },
        )

    @staticmethod
    def instance_realized(
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTANCE_REALIZED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Past-due occurrence {instance_date.isoformat()} realized",
            details={
                "series_id": str(series_id),
                "instance_date": instance_date.isoformat(),
            },
        )

    @staticmethod
    def match_created(
        match_id: UUID,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
        score: float,
        auto_matched: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.MATCH_AUTO_MATCHED
            if auto_matched
            else AuditEventType.MATCH_SUGGESTED
        )
        verb = "Auto-matched" if auto_matched else "Suggested"
        return AuditEvent(
            event_type=event_type,
            entity_type="match",
            entity_id=match_id,
            correlation_id=correlation_id,
            description=f"{verb} with {score:.0%} confidence",
            details={
                "transaction_id": str(transaction_id),
                "series_id": str(series_id),
                "instance_date": instance_date.isoformat(),
                "confidence_score": score,
            },
        )

    @staticmethod
    def match_accepted(
        match_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATCH_ACCEPTED,
            entity_type="match",
            entity_id=match_id,
            correlation_id=correlation_id,
            description="User accepted suggested match",
            details={"transaction_id": str(transaction_id)},
            is_user_action=True,
        )

    @staticmethod
    def match_rejected(
        match_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATCH_REJECTED,
            entity_type="match",
            entity_id=match_id,
            correlation_id=correlation_id,
            description="User rejected suggested match",
            details={"transaction_id": str(transaction_id)},
            is_user_action=True,
        )

    @staticmethod
    def manual_linked(
        match_id: UUID,
        transaction_id: UUID,
        series_id: UUID,
        instance_date: date,
        supersedes_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATCH_MANUAL_LINKED,
            entity_type="match",
            entity_id=match_id,
            correlation_id=correlation_id,
            description=f"Transaction manually linked to occurrence {instance_date.isoformat()}",
            details={
                "transaction_id": str(transaction_id),
                "series_id": str(series_id),
                "instance_date": instance_date.isoformat(),
                "supersedes_id": str(supersedes_id) if supersedes_id else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def match_unlinked(
        match_id: UUID,
        superseded_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATCH_UNLINKED,
            entity_type="match",
            entity_id=match_id,
            correlation_id=correlation_id,
            description="Match unlinked",
            details={"superseded_id": str(superseded_id)},
            is_user_action=True,
        )

    @staticmethod
    def match_conflict(
        match_id: Optional[UUID],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATCH_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="match",
            entity_id=match_id,
            correlation_id=correlation_id,
            description="Match rejected by one-to-one constraint",
            error_code="conflict",
            error_message=reason,
        )

    @staticmethod
    def bulk_action_completed(
        action: str,
        succeeded: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BULK_ACTION_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            correlation_id=correlation_id,
            description=f"Bulk {action}: {succeeded} succeeded, {failed} failed",
            details={
                "action": action,
                "succeeded": succeeded,
                "failed": failed,
            },
            is_user_action=True,
        )

    @staticmethod
    def duplicate_skipped(
        candidate_id: UUID,
        duplicate_of_id: UUID,
        similarity: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_SKIPPED,
            entity_type="transaction",
            entity_id=candidate_id,
            correlation_id=correlation_id,
            description="Import row skipped as duplicate",
            details={
                "duplicate_of_id": str(duplicate_of_id),
                "similarity": similarity,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_code="storage",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )

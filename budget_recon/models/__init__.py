"""
Data Models Package

This package contains all Pydantic models used by the projection and
reconciliation engines. All data flowing through the system must conform
to these schemas.
"""

from budget_recon.models.series import (
    BiWeeklyPattern,
    DailyPattern,
    ExceptionKind,
    Frequency,
    InstanceException,
    Money,
    MonthlyPattern,
    PastDueItem,
    PastDueSummary,
    ProjectedInstance,
    ProjectedTransferInstance,
    QuarterlyPattern,
    RecurrencePattern,
    RecurringSeries,
    RecurringTransferSeries,
    TransferLeg,
    WeeklyPattern,
    YearlyPattern,
    build_pattern,
    utc_now,
)
from budget_recon.models.transaction import (
    DuplicateCheckResult,
    DuplicateMatch,
    ImportedTransaction,
    TransactionType,
)
from budget_recon.models.reconciliation import (
    BulkActionResult,
    BulkItemOutcome,
    ConfidenceLevel,
    FindMatchesResult,
    InstanceReconciliationStatus,
    InstanceState,
    MatchCandidate,
    MatchSource,
    MatchStatus,
    MatchingTolerances,
    ReconciliationMatch,
    ReconciliationStatusReport,
    ScoringWeights,
    TransactionCandidates,
    confidence_level_for,
)
from budget_recon.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from budget_recon.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Series models
    "BiWeeklyPattern",
    "DailyPattern",
    "ExceptionKind",
    "Frequency",
    "InstanceException",
    "Money",
    "MonthlyPattern",
    "PastDueItem",
    "PastDueSummary",
    "ProjectedInstance",
    "ProjectedTransferInstance",
    "QuarterlyPattern",
    "RecurrencePattern",
    "RecurringSeries",
    "RecurringTransferSeries",
    "TransferLeg",
    "WeeklyPattern",
    "YearlyPattern",
    "build_pattern",
    "utc_now",
    # Transaction models
    "DuplicateCheckResult",
    "DuplicateMatch",
    "ImportedTransaction",
    "TransactionType",
    # Reconciliation models
    "BulkActionResult",
    "BulkItemOutcome",
    "ConfidenceLevel",
    "FindMatchesResult",
    "InstanceReconciliationStatus",
    "InstanceState",
    "MatchCandidate",
    "MatchSource",
    "MatchStatus",
    "MatchingTolerances",
    "ReconciliationMatch",
    "ReconciliationStatusReport",
    "ScoringWeights",
    "TransactionCandidates",
    "confidence_level_for",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

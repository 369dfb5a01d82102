"""Recurrence projection package."""

from budget_recon.recurrence.dates import (
    add_months,
    clamp_day,
    first_occurrence,
    first_on_or_after,
    is_occurrence,
    occurrences,
    step_forward,
)
from budget_recon.recurrence.projector import (
    RecurrenceProjector,
    find_past_due,
    find_past_due_transfers,
    project_instances,
    project_transfer_instances,
    summarize_past_due,
    transfer_leg_instances,
)

__all__ = [
    # Date primitives
    "add_months",
    "clamp_day",
    "first_occurrence",
    "first_on_or_after",
    "is_occurrence",
    "occurrences",
    "step_forward",
    # Projection
    "RecurrenceProjector",
    "find_past_due",
    "find_past_due_transfers",
    "project_instances",
    "project_transfer_instances",
    "summarize_past_due",
    "transfer_leg_instances",
]

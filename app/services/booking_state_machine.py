"""
Booking State Machine

This module is the SINGLE SOURCE OF TRUTH for all booking status transitions.
All status changes must go through this module.

Lifecycle:
    booked -> loaded -> in_transit -> unloaded -> delivered
    booked | loaded -> cancelled

Physical handling steps can only be recorded by the workflow that performs
them: loading a vehicle happens in the loading workflow, unloading in the
unloading workflow. A transition that exists but arrives from the wrong
workflow is reported separately from one that does not exist at all, so
clients can prompt for a scan instead of showing a generic error.
"""

from typing import Dict, FrozenSet, List, Tuple
from datetime import datetime, timezone

from app.core.exceptions import InvalidStateTransition, WrongWorkflowContext
from app.models.booking import BookingStatus, WorkflowContext


# =============================================================================
# TRANSITION RULES
# =============================================================================

# (current_status, new_status) -> workflow contexts allowed to drive it
BOOKING_TRANSITIONS: Dict[Tuple[str, str], FrozenSet[str]] = {
    (BookingStatus.BOOKED.value, BookingStatus.LOADED.value): frozenset({
        WorkflowContext.LOADING.value,
    }),
    (BookingStatus.LOADED.value, BookingStatus.IN_TRANSIT.value): frozenset({
        WorkflowContext.LOADING.value,
        WorkflowContext.GENERAL.value,
    }),
    (BookingStatus.IN_TRANSIT.value, BookingStatus.UNLOADED.value): frozenset({
        WorkflowContext.UNLOADING.value,
    }),
    (BookingStatus.UNLOADED.value, BookingStatus.DELIVERED.value): frozenset({
        WorkflowContext.UNLOADING.value,
        WorkflowContext.GENERAL.value,
    }),
    (BookingStatus.BOOKED.value, BookingStatus.CANCELLED.value): frozenset({
        WorkflowContext.GENERAL.value,
    }),
    (BookingStatus.LOADED.value, BookingStatus.CANCELLED.value): frozenset({
        WorkflowContext.GENERAL.value,
    }),
}

TERMINAL_STATUSES = frozenset({
    BookingStatus.DELIVERED.value,
    BookingStatus.CANCELLED.value,
})

# Human-readable action names for each transition
TRANSITION_ACTIONS: Dict[Tuple[str, str], str] = {
    (BookingStatus.BOOKED.value, BookingStatus.LOADED.value): "Load",
    (BookingStatus.LOADED.value, BookingStatus.IN_TRANSIT.value): "Dispatch",
    (BookingStatus.IN_TRANSIT.value, BookingStatus.UNLOADED.value): "Unload",
    (BookingStatus.UNLOADED.value, BookingStatus.DELIVERED.value): "Deliver",
    (BookingStatus.BOOKED.value, BookingStatus.CANCELLED.value): "Cancel",
    (BookingStatus.LOADED.value, BookingStatus.CANCELLED.value): "Cancel",
}

# Milestone timestamp stamped when a status is entered
MILESTONE_FIELDS: Dict[str, str] = {
    BookingStatus.LOADED.value: "loaded_at",
    BookingStatus.IN_TRANSIT.value: "in_transit_at",
    BookingStatus.UNLOADED.value: "unloaded_at",
    BookingStatus.DELIVERED.value: "delivered_at",
    BookingStatus.CANCELLED.value: "cancelled_at",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str, context: str) -> bool:
    """Check if a transition is allowed from the given workflow."""
    return context in BOOKING_TRANSITIONS.get((current_status, new_status), frozenset())


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get statuses reachable from current status, from any workflow."""
    return [to for (frm, to) in BOOKING_TRANSITIONS if frm == current_status]


def get_transition_action(current_status: str, new_status: str) -> str:
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return status in TERMINAL_STATUSES


def can_modify_articles(status: str) -> bool:
    """Lines are frozen once the booking is delivered or cancelled."""
    return not is_terminal(status)


def validate_transition(current_status: str, new_status: str, context: str) -> None:
    """
    Validate a status transition.

    Raises:
        InvalidStateTransition: the edge does not exist (same-status edits
            included)
        WrongWorkflowContext: the edge exists but not for this workflow
    """
    allowed_contexts = BOOKING_TRANSITIONS.get((current_status, new_status))

    if allowed_contexts is None:
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            message = f"Booking in '{current_status}' status cannot change. This is a terminal state."
        else:
            message = (
                f"Invalid status transition from '{current_status}' to '{new_status}'. "
                f"Allowed transitions: {', '.join(allowed)}"
            )
        raise InvalidStateTransition(
            message,
            details={
                "current_status": current_status,
                "requested_status": new_status,
                "allowed_transitions": allowed,
            },
        )

    if context not in allowed_contexts:
        raise WrongWorkflowContext(
            f"'{get_transition_action(current_status, new_status)}' must be performed "
            f"from the {' or '.join(sorted(allowed_contexts))} workflow",
            details={
                "current_status": current_status,
                "requested_status": new_status,
                "workflow_context": context,
                "allowed_contexts": sorted(allowed_contexts),
            },
        )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def milestone_values(new_status: str, reason: str = None) -> dict:
    """Column values to write alongside a status change."""
    values = {}
    field = MILESTONE_FIELDS.get(new_status)
    if field:
        values[field] = datetime.now(timezone.utc)
    if new_status == BookingStatus.CANCELLED.value:
        values["cancellation_reason"] = reason
    return values

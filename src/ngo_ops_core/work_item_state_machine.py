"""State machine validation for Work Item lifecycle status transitions.

Work Items move through an intake -> execution -> review -> closure lifecycle:

    draft -> not_started -> in_progress -> waiting_on_ngo / waiting_on_hpg
          -> submitted -> under_review -> approved / rejected -> complete

canceled is reachable from every non-terminal state. Terminal states:
complete, canceled.

This module is the single source of truth for which transitions are legal.
Evidence and approval gates are checked separately (see ``check_gates``)
because they depend on the item's recorded state, not only on its status.
"""
import logging
from typing import Optional

from .errors import OpsCoreError, PreconditionFailedError
from .models import EvidenceStatus, WorkItemStatus

logger = logging.getLogger("ngo-ops.work_item_state_machine")


class InvalidTransitionError(OpsCoreError):
    """Raised when an invalid Work Item state transition is attempted."""

    code = "invalid_transition"

    def __init__(
        self,
        message: str,
        current_status: WorkItemStatus,
        requested_status: WorkItemStatus,
        allowed_transitions: list[WorkItemStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


TERMINAL_STATUSES: frozenset[WorkItemStatus] = frozenset({
    WorkItemStatus.COMPLETE,
    WorkItemStatus.CANCELED,
})

# Statuses counted as open work by the dashboards
ACTIVE_STATUSES: tuple[WorkItemStatus, ...] = (
    WorkItemStatus.NOT_STARTED,
    WorkItemStatus.IN_PROGRESS,
    WorkItemStatus.WAITING_ON_NGO,
    WorkItemStatus.WAITING_ON_HPG,
    WorkItemStatus.SUBMITTED,
    WorkItemStatus.UNDER_REVIEW,
)

# Statuses that require a recorded approval decision when approval_required
APPROVAL_GATED_STATUSES: frozenset[WorkItemStatus] = frozenset({
    WorkItemStatus.APPROVED,
    WorkItemStatus.COMPLETE,
})


# Work Item state machine transition matrix
# Maps current status → list of allowed next statuses
WORK_ITEM_TRANSITION_MATRIX: dict[WorkItemStatus, list[WorkItemStatus]] = {
    WorkItemStatus.DRAFT: [
        WorkItemStatus.DRAFT,           # No-op (allowed)
        WorkItemStatus.NOT_STARTED,     # Forward: ready to be picked up
        WorkItemStatus.CANCELED,        # Terminal: abandoned before intake
    ],
    WorkItemStatus.NOT_STARTED: [
        WorkItemStatus.NOT_STARTED,     # No-op (allowed)
        WorkItemStatus.DRAFT,           # Back: needs more definition
        WorkItemStatus.IN_PROGRESS,     # Forward: work started
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.IN_PROGRESS: [
        WorkItemStatus.IN_PROGRESS,     # No-op (allowed)
        WorkItemStatus.NOT_STARTED,     # Back: returned to backlog
        WorkItemStatus.WAITING_ON_NGO,  # Blocked on the partner
        WorkItemStatus.WAITING_ON_HPG,  # Blocked internally
        WorkItemStatus.SUBMITTED,       # Forward: handed in
        WorkItemStatus.COMPLETE,        # Forward: done (gates still apply)
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.WAITING_ON_NGO: [
        WorkItemStatus.WAITING_ON_NGO,  # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,     # Unblocked
        WorkItemStatus.WAITING_ON_HPG,  # Ball moved to internal staff
        WorkItemStatus.SUBMITTED,       # Partner delivered
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.WAITING_ON_HPG: [
        WorkItemStatus.WAITING_ON_HPG,  # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,     # Unblocked
        WorkItemStatus.WAITING_ON_NGO,  # Ball moved to the partner
        WorkItemStatus.SUBMITTED,
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.SUBMITTED: [
        WorkItemStatus.SUBMITTED,       # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,     # Back: submission withdrawn
        WorkItemStatus.UNDER_REVIEW,    # Forward: reviewer picked it up
        WorkItemStatus.COMPLETE,        # Forward: accepted without formal review
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.UNDER_REVIEW: [
        WorkItemStatus.UNDER_REVIEW,    # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,     # Back: changes requested
        WorkItemStatus.APPROVED,        # Forward: accepted
        WorkItemStatus.REJECTED,        # Forward: declined
        WorkItemStatus.COMPLETE,
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.APPROVED: [
        WorkItemStatus.APPROVED,        # No-op (allowed)
        WorkItemStatus.UNDER_REVIEW,    # Back: approval reopened
        WorkItemStatus.COMPLETE,        # Forward: closed out
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.REJECTED: [
        WorkItemStatus.REJECTED,        # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,     # Back: rework
        WorkItemStatus.UNDER_REVIEW,    # Resubmitted for review
        WorkItemStatus.CANCELED,
    ],
    WorkItemStatus.COMPLETE: [
        WorkItemStatus.COMPLETE,        # No-op (allowed)
        # Terminal state - no transitions out
        # Create a new work item if follow-up work is needed
    ],
    WorkItemStatus.CANCELED: [
        WorkItemStatus.CANCELED,        # No-op (allowed)
        # Terminal state - no transitions out
    ],
}


# Human-readable labels, shared by every view instead of per-page maps
STATUS_LABELS: dict[WorkItemStatus, str] = {
    WorkItemStatus.DRAFT: "Draft",
    WorkItemStatus.NOT_STARTED: "Not Started",
    WorkItemStatus.IN_PROGRESS: "In Progress",
    WorkItemStatus.WAITING_ON_NGO: "Waiting on NGO",
    WorkItemStatus.WAITING_ON_HPG: "Waiting on HPG",
    WorkItemStatus.SUBMITTED: "Submitted",
    WorkItemStatus.UNDER_REVIEW: "Under Review",
    WorkItemStatus.APPROVED: "Approved",
    WorkItemStatus.REJECTED: "Rejected",
    WorkItemStatus.COMPLETE: "Complete",
    WorkItemStatus.CANCELED: "Canceled",
}


def is_work_item_transition_valid(
    current_status: WorkItemStatus,
    new_status: WorkItemStatus,
) -> bool:
    """
    Check if a Work Item status transition is valid.

    Args:
        current_status: Current lifecycle status
        new_status: Requested new lifecycle status

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = WORK_ITEM_TRANSITION_MATRIX.get(current_status, [])
    return new_status in allowed_transitions


def validate_work_item_transition(
    current_status: WorkItemStatus,
    new_status: WorkItemStatus,
) -> None:
    """
    Validate a Work Item status transition and raise exception if invalid.

    Args:
        current_status: Current lifecycle status
        new_status: Requested new lifecycle status

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    # No-op transitions are always allowed (setting same status)
    if current_status == new_status:
        logger.debug(f"No-op Work Item transition: {current_status.value} → {new_status.value}")
        return

    if not is_work_item_transition_valid(current_status, new_status):
        allowed_transitions = WORK_ITEM_TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_status]

        error_msg = f"Invalid Work Item status transition: {current_status.value} → {new_status.value}."
        if allowed_names:
            error_msg += f" From {STATUS_LABELS[current_status]}, you can only transition to: {', '.join(allowed_names)}."

        if current_status == WorkItemStatus.COMPLETE:
            error_msg += " Completed work items are immutable. Create a new work item for additional work."
        elif current_status == WorkItemStatus.CANCELED:
            error_msg += " Canceled work items cannot be reactivated. Create a new work item to restart."
        elif new_status == WorkItemStatus.APPROVED:
            error_msg += " Work items must be under review before they can be approved."

        logger.warning(f"Blocked Work Item transition: {error_msg}")
        raise InvalidTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions
        )

    logger.debug(f"Valid Work Item transition: {current_status.value} → {new_status.value}")


def check_gates(
    new_status: WorkItemStatus,
    evidence_required: bool,
    evidence_status: Optional[EvidenceStatus],
    approval_required: bool,
    has_approval: bool,
) -> None:
    """
    Check the evidence and approval gates for a target status.

    Args:
        new_status: Requested new lifecycle status
        evidence_required: Whether the item needs approved evidence to complete
        evidence_status: The item's current aggregate evidence status
        approval_required: Whether the item needs an approval decision
        has_approval: Whether an approving decision is on record

    Raises:
        PreconditionFailedError: If a gate is not satisfied
    """
    if new_status == WorkItemStatus.COMPLETE and evidence_required and evidence_status != EvidenceStatus.APPROVED:
        current = evidence_status.value if evidence_status else EvidenceStatus.MISSING.value
        raise PreconditionFailedError(
            f"Cannot complete work item: evidence is required and its status is '{current}', not 'approved'.",
            gate="evidence",
        )

    if new_status in APPROVAL_GATED_STATUSES and approval_required and not has_approval:
        raise PreconditionFailedError(
            f"Cannot move work item to {new_status.value}: approval is required and no approval decision is recorded.",
            gate="approval",
        )


def get_allowed_work_item_transitions(current_status: WorkItemStatus) -> list[WorkItemStatus]:
    """
    Get list of allowed transitions from current Work Item status.

    Args:
        current_status: Current lifecycle status

    Returns:
        List of allowed next statuses (excluding no-op same status)
    """
    all_transitions = WORK_ITEM_TRANSITION_MATRIX.get(current_status, [])
    # Filter out the no-op transition (same status)
    return [s for s in all_transitions if s != current_status]


def is_terminal_status(status: WorkItemStatus) -> bool:
    """Check if a Work Item status is terminal (no further transitions)."""
    return status in TERMINAL_STATUSES

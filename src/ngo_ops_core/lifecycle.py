"""Status lifecycle operations for Work Items.

Applies the transition table from ``work_item_state_machine`` together with
the evidence and approval gates, and records approval decisions.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models
from .errors import PreconditionFailedError
from .work_item_state_machine import (
    APPROVAL_GATED_STATUSES,
    check_gates,
    get_allowed_work_item_transitions,
    validate_work_item_transition,
)

logger = logging.getLogger("ngo-ops.lifecycle")


def has_recorded_approval(db: Session, work_item: models.WorkItem) -> bool:
    """True when the most recent approval decision for the item is ``approved``."""
    latest = crud.get_latest_approval(db, work_item.id)
    return latest is not None and latest.decision == models.ReviewDecision.APPROVED


def transition_work_item(
    db: Session,
    work_item: models.WorkItem,
    new_status: models.WorkItemStatus,
    user_id: Optional[UUID] = None,
) -> models.WorkItem:
    """
    Move a work item to a new status.

    Args:
        db: Database session
        work_item: Work item to transition
        new_status: Requested status
        user_id: Acting user

    Returns:
        The updated work item

    Raises:
        InvalidTransitionError: If the transition table does not allow the move
        PreconditionFailedError: If the evidence or approval gate is not satisfied
    """
    old_status = work_item.status

    validate_work_item_transition(old_status, new_status)
    if old_status == new_status:
        return work_item

    check_gates(
        new_status,
        evidence_required=work_item.evidence_required,
        evidence_status=work_item.evidence_status,
        approval_required=work_item.approval_required,
        has_approval=work_item.approval_required and has_recorded_approval(db, work_item),
    )

    now = models.utcnow()
    work_item.status = new_status
    work_item.updated_at = now
    if new_status == models.WorkItemStatus.COMPLETE:
        work_item.completed_at = now

    crud.create_work_item_history(
        db, work_item, "status_changed", user_id,
        field_name="status",
        old_value=old_status.value,
        new_value=new_status.value,
    )

    db.commit()
    db.refresh(work_item)

    logger.info(f"Work item {work_item.id} transitioned: {old_status.value} -> {new_status.value}")
    return work_item


def record_approval(
    db: Session,
    work_item: models.WorkItem,
    decision: models.ReviewDecision,
    approver_id: UUID,
    notes: Optional[str] = None,
) -> models.WorkItemApproval:
    """
    Record an approval decision against a work item.

    When the item names an approver, only that user may decide. An item that
    requires approval and is already approved or complete cannot be rejected
    in place; move it back to ``under_review`` first.

    Raises:
        NotFoundError: If the approver does not resolve
        PreconditionFailedError: If someone other than the named approver
            decides, or a rejection would strip an approved or complete item
            of its approval
    """
    crud.require_profile(db, approver_id)

    if work_item.approver_user_id and work_item.approver_user_id != approver_id:
        logger.warning(
            f"User {approver_id} attempted to decide on work item {work_item.id} "
            f"assigned to approver {work_item.approver_user_id}"
        )
        raise PreconditionFailedError(
            "Only the assigned approver can record an approval decision for this work item.",
            gate="approval",
        )

    if (
        decision == models.ReviewDecision.REJECTED
        and work_item.approval_required
        and work_item.status in APPROVAL_GATED_STATUSES
    ):
        logger.warning(f"Rejection refused on work item {work_item.id} in status {work_item.status.value}")
        raise PreconditionFailedError(
            f"Cannot reject work item in status {work_item.status.value}; "
            f"move it back to under_review before recording a rejection.",
            gate="approval",
        )

    approval = models.WorkItemApproval(
        work_item_id=work_item.id,
        approver_user_id=approver_id,
        decision=decision,
        notes=notes,
    )
    db.add(approval)

    crud.create_work_item_history(
        db, work_item, "approval_recorded", approver_id,
        field_name="approval",
        new_value=decision.value,
        change_reason=notes,
    )

    db.commit()
    db.refresh(approval)

    logger.info(f"Approval decision '{decision.value}' recorded on work item {work_item.id} by {approver_id}")
    return approval


def get_allowed_transitions(work_item: models.WorkItem) -> list[models.WorkItemStatus]:
    """Targets the transition table allows from the item's status; gates are not applied."""
    return get_allowed_work_item_transitions(work_item.status)

"""Bulk operations over a selection of Work Items.

Each id is applied and committed on its own. A failure rolls back that id
only and is reported in its result; the batch never stops early.
"""
import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models
from .config import get_settings
from .errors import OpsCoreError, ValidationError
from .lifecycle import transition_work_item
from .schemas import (
    BulkItemResult,
    BulkOperation,
    BulkResult,
    BumpDueDates,
    ReassignOwner,
    SetStatus,
)

logger = logging.getLogger("ngo-ops.bulk_operations")


def _set_status(db: Session, work_item: models.WorkItem, op: SetStatus, user_id: Optional[UUID]) -> bool:
    if work_item.status == op.target:
        return False
    transition_work_item(db, work_item, op.target, user_id)
    return True


def _reassign_owner(db: Session, work_item: models.WorkItem, op: ReassignOwner, user_id: Optional[UUID]) -> bool:
    if work_item.owner_user_id == op.user_id:
        return False

    crud.create_work_item_history(
        db, work_item, "reassigned", user_id,
        field_name="owner_user_id",
        old_value=str(work_item.owner_user_id) if work_item.owner_user_id else None,
        new_value=str(op.user_id),
        change_reason="bulk reassignment",
    )
    work_item.owner_user_id = op.user_id
    work_item.updated_at = models.utcnow()
    db.commit()
    return True


def _bump_due_date(db: Session, work_item: models.WorkItem, op: BumpDueDates, user_id: Optional[UUID]) -> bool:
    # Items without a due date are left alone
    if work_item.due_date is None or op.delta_days == 0:
        return False

    old_due = work_item.due_date
    new_due = old_due + timedelta(days=op.delta_days)
    crud.create_work_item_history(
        db, work_item, "due_date_changed", user_id,
        field_name="due_date",
        old_value=old_due.isoformat(),
        new_value=new_due.isoformat(),
        change_reason=f"bulk shift by {op.delta_days} days",
    )
    work_item.due_date = new_due
    work_item.updated_at = models.utcnow()
    db.commit()
    return True


_HANDLERS = {
    "set_status": _set_status,
    "reassign_owner": _reassign_owner,
    "bump_due_dates": _bump_due_date,
}


def apply_bulk(
    db: Session,
    ids: list[UUID],
    operation: BulkOperation,
    user_id: Optional[UUID] = None,
) -> BulkResult:
    """
    Apply one operation to every selected work item.

    Args:
        db: Database session
        ids: Work item ids, processed in order; duplicates are processed once
        operation: SetStatus, ReassignOwner or BumpDueDates
        user_id: Acting user

    Returns:
        BulkResult with one entry per distinct id, in request order

    Raises:
        ValidationError: If the selection is empty or larger than the configured maximum
        NotFoundError: If a ReassignOwner target user does not resolve
    """
    settings = get_settings()
    unique_ids = list(dict.fromkeys(ids))
    if not unique_ids:
        raise ValidationError("Bulk operations need at least one work item id", field="ids")
    if len(unique_ids) > settings.bulk_max_items:
        raise ValidationError(
            f"Bulk operations are limited to {settings.bulk_max_items} work items, got {len(unique_ids)}",
            field="ids",
        )

    # Resolved once; the target user is shared by every item
    if isinstance(operation, ReassignOwner):
        crud.require_profile(db, operation.user_id)

    handler = _HANDLERS[operation.kind]
    results: list[BulkItemResult] = []

    for work_item_id in unique_ids:
        try:
            work_item = crud.require_work_item(db, work_item_id)
            changed = handler(db, work_item, operation, user_id)
            results.append(BulkItemResult(id=work_item_id, ok=True, skipped=not changed))
        except OpsCoreError as e:
            db.rollback()
            results.append(BulkItemResult(id=work_item_id, ok=False, error_code=e.code, error_message=e.message))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error applying {operation.kind} to work item {work_item_id}: {e}", exc_info=True)
            results.append(BulkItemResult(id=work_item_id, ok=False, error_code="store_error", error_message=str(e)))

    result = BulkResult(results=results)
    logger.info(
        f"Bulk {operation.kind}: {len(result.succeeded)} succeeded, "
        f"{len(result.failed)} failed of {len(results)} work items"
    )
    return result

"""Work Items API router.

Lifecycle: draft -> not_started -> in_progress -> waiting_on_ngo/waiting_on_hpg
-> submitted -> under_review -> approved/rejected -> complete (canceled from
any non-terminal state).
"""
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ... import bulk_operations, crud, lifecycle, reminders
from ...database import get_db
from ...errors import OpsCoreError, PartialBulkFailure
from ...models import ModuleType, Profile, WorkItemStatus
from ...schemas import (
    ApprovalCreate,
    ApprovalResponse,
    BulkRequest,
    BulkResult,
    WorkItemCreate,
    WorkItemHistoryResponse,
    WorkItemListResponse,
    WorkItemResponse,
    WorkItemTransition,
    WorkItemUpdate,
)
from ..dependencies import get_current_user, to_http_exception

logger = logging.getLogger("ngo-ops.api.work_items")

router = APIRouter(tags=["work-items"])


@router.post("/", response_model=WorkItemResponse, status_code=status.HTTP_201_CREATED)
async def create_work_item(
    data: WorkItemCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Create a new Work Item.

    The department is resolved from the module when not given, and a reminder
    is scheduled ahead of the due date for the owner (or the creator).
    """
    try:
        work_item = crud.create_work_item(db, data, current_user.id)
        reminders.schedule_default_for_work_item(db, work_item)
    except OpsCoreError as e:
        raise to_http_exception(e)
    return work_item


@router.get("/", response_model=WorkItemListResponse)
async def list_work_items(
    ngo_id: Optional[UUID] = None,
    status_filter: Optional[list[WorkItemStatus]] = Query(None, alias="status"),
    module: Optional[ModuleType] = None,
    department_id: Optional[list[UUID]] = Query(None),
    owner_user_id: Optional[UUID] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """List Work Items with filtering and pagination."""
    work_items, total = crud.get_work_items(
        db,
        skip=(page - 1) * page_size,
        limit=page_size,
        ngo_id=ngo_id,
        statuses=status_filter,
        module=module,
        department_ids=department_id,
        owner_user_id=owner_user_id,
        due_from=due_from,
        due_to=due_to,
    )
    return WorkItemListResponse(
        items=[WorkItemResponse.model_validate(wi) for wi in work_items],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
    )


@router.post("/bulk", response_model=BulkResult)
async def bulk_update_work_items(
    data: BulkRequest,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Apply one operation to many Work Items.

    Returns 200 when every item succeeded and 207 with the per-id results
    when some failed.
    """
    try:
        result = bulk_operations.apply_bulk(db, data.ids, data.operation, current_user.id)
        result.raise_for_failures()
    except PartialBulkFailure:
        return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=result.model_dump(mode="json"))
    except OpsCoreError as e:
        raise to_http_exception(e)
    return result


@router.get("/{work_item_id}", response_model=WorkItemResponse)
async def get_work_item(
    work_item_id: UUID,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Get a Work Item by id."""
    work_item = crud.get_work_item(db, work_item_id)
    if not work_item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Work Item not found: {work_item_id}"
        )
    return work_item


@router.patch("/{work_item_id}", response_model=WorkItemResponse)
async def update_work_item(
    work_item_id: UUID,
    data: WorkItemUpdate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Update the editable fields of a Work Item. Status changes go through /transition."""
    try:
        work_item = crud.require_work_item(db, work_item_id)
        return crud.update_work_item(db, work_item, data, current_user.id)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.delete("/{work_item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_work_item(
    work_item_id: UUID,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Delete a Work Item with its documents, reminders, approvals and history."""
    try:
        work_item = crud.require_work_item(db, work_item_id)
    except OpsCoreError as e:
        raise to_http_exception(e)
    crud.delete_work_item(db, work_item)
    logger.info(f"Work item {work_item_id} deleted by {current_user.id}")


@router.post("/{work_item_id}/transition", response_model=WorkItemResponse)
async def transition_work_item(
    work_item_id: UUID,
    data: WorkItemTransition,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Transition a Work Item to a new status."""
    try:
        work_item = crud.require_work_item(db, work_item_id)
        return lifecycle.transition_work_item(db, work_item, data.new_status, current_user.id)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.get("/{work_item_id}/transitions", response_model=list[str])
async def get_allowed_transitions(
    work_item_id: UUID,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Get allowed status transitions for a Work Item."""
    try:
        work_item = crud.require_work_item(db, work_item_id)
    except OpsCoreError as e:
        raise to_http_exception(e)
    return [s.value for s in lifecycle.get_allowed_transitions(work_item)]


@router.post("/{work_item_id}/approvals", response_model=ApprovalResponse, status_code=status.HTTP_201_CREATED)
async def record_approval(
    work_item_id: UUID,
    data: ApprovalCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Record the acting user's approval decision on a Work Item."""
    try:
        work_item = crud.require_work_item(db, work_item_id)
        return lifecycle.record_approval(db, work_item, data.decision, current_user.id, data.notes)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.get("/{work_item_id}/history", response_model=list[WorkItemHistoryResponse])
async def get_work_item_history(
    work_item_id: UUID,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Get Work Item change history, newest first."""
    try:
        crud.require_work_item(db, work_item_id)
    except OpsCoreError as e:
        raise to_http_exception(e)
    return crud.get_work_item_history(db, work_item_id, limit)

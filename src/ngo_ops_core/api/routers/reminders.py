"""Reminders API router."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ... import reminders
from ...database import get_db
from ...errors import OpsCoreError
from ...models import Profile
from ...schemas import ReminderCreate, ReminderResponse
from ..dependencies import get_current_user, to_http_exception

router = APIRouter(tags=["reminders"])


@router.post("/", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def schedule_reminder(
    data: ReminderCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Schedule a reminder; past timestamps are accepted and due immediately."""
    try:
        return reminders.schedule(db, data.work_item_id, data.user_id or current_user.id, data.remind_at)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.get("/upcoming", response_model=list[ReminderResponse])
async def list_upcoming_reminders(
    within_hours: Optional[int] = Query(None, ge=1, le=24 * 90),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """The acting user's unseen reminders due soon."""
    return reminders.list_upcoming(db, current_user.id, within_hours)


@router.post("/{reminder_id}/seen", response_model=ReminderResponse)
async def mark_reminder_seen(
    reminder_id: UUID,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    try:
        return reminders.mark_seen(db, reminder_id)
    except OpsCoreError as e:
        raise to_http_exception(e)

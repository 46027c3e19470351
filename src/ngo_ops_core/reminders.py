"""Reminder scheduling for Work Items.

Reminders are polled: ``list_upcoming`` is evaluated on every read, there is
no background delivery loop. Past timestamps are accepted and simply show up
as due immediately. Identical reminders are not deduplicated.
"""
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Union
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from . import crud, models
from .config import get_settings
from .errors import NotFoundError, ValidationError

logger = logging.getLogger("ngo-ops.reminders")

REMINDER_SCHEDULED = "scheduled"
REMINDER_SEEN = "seen"

_datetime_adapter = TypeAdapter(datetime)


def parse_remind_at(value: Union[datetime, str]) -> datetime:
    """
    Parse a reminder timestamp into naive UTC.

    Raises:
        ValidationError: If the value is not a parseable timestamp
    """
    try:
        parsed = _datetime_adapter.validate_python(value)
    except PydanticValidationError as e:
        raise ValidationError(f"Unparseable reminder timestamp: {value!r}", field="remind_at") from e

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def schedule(
    db: Session,
    work_item_id: UUID,
    user_id: UUID,
    remind_at: Union[datetime, str],
) -> models.Reminder:
    """
    Create a reminder for a user on a work item.

    Args:
        db: Database session
        work_item_id: Work item the reminder is about
        user_id: User to remind
        remind_at: When to remind; datetime or ISO 8601 string

    Returns:
        The created Reminder

    Raises:
        ValidationError: If remind_at cannot be parsed
        NotFoundError: If the work item or user does not resolve
    """
    when = parse_remind_at(remind_at)
    crud.require_work_item(db, work_item_id)
    crud.require_profile(db, user_id)

    reminder = models.Reminder(
        work_item_id=work_item_id,
        user_id=user_id,
        remind_at=when,
        status=REMINDER_SCHEDULED,
        channel=get_settings().reminder_channel,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)

    if when < models.utcnow():
        logger.info(f"Scheduled reminder {reminder.id} for work item {work_item_id} in the past ({when.isoformat()}); due immediately")
    else:
        logger.info(f"Scheduled reminder {reminder.id} for work item {work_item_id} at {when.isoformat()}")
    return reminder


def schedule_in(db: Session, work_item_id: UUID, user_id: UUID, days: int) -> models.Reminder:
    """Quick offset: remind ``days`` from now."""
    return schedule(db, work_item_id, user_id, models.utcnow() + timedelta(days=days))


def schedule_default_for_work_item(db: Session, work_item: models.WorkItem) -> Optional[models.Reminder]:
    """
    Schedule the standard reminder ahead of a work item's due date.

    The reminder goes to the owner, or to the creator when there is no owner,
    ``default_reminder_offset_days`` before the due date (at midnight UTC).

    Returns:
        The created Reminder, or None when the item has no due date or nobody to remind
    """
    user_id = work_item.owner_user_id or work_item.created_by_user_id
    if work_item.due_date is None or user_id is None:
        logger.debug(f"No default reminder for work item {work_item.id}: missing due date or recipient")
        return None

    offset = timedelta(days=get_settings().default_reminder_offset_days)
    remind_at = datetime.combine(work_item.due_date, time.min) - offset
    return schedule(db, work_item.id, user_id, remind_at)


def list_upcoming(
    db: Session,
    user_id: UUID,
    within_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[models.Reminder]:
    """Unseen reminders for a user due between now and now + within_hours, soonest first."""
    if within_hours is None:
        within_hours = get_settings().upcoming_reminder_hours
    now = now or models.utcnow()
    until = now + timedelta(hours=within_hours)

    return db.query(models.Reminder).filter(
        models.Reminder.user_id == user_id,
        models.Reminder.seen_at.is_(None),
        models.Reminder.remind_at >= now,
        models.Reminder.remind_at <= until,
    ).order_by(
        models.Reminder.remind_at.asc()
    ).all()


def mark_seen(db: Session, reminder_id: UUID) -> models.Reminder:
    """
    Acknowledge a reminder. Marking an already-seen reminder changes nothing.

    Raises:
        NotFoundError: If the reminder does not exist
    """
    reminder = crud.get_reminder(db, reminder_id)
    if not reminder:
        raise NotFoundError("Reminder", reminder_id)

    if reminder.seen_at is not None:
        logger.debug(f"Reminder {reminder_id} already seen at {reminder.seen_at.isoformat()}")
        return reminder

    reminder.seen_at = models.utcnow()
    reminder.status = REMINDER_SEEN
    db.commit()
    db.refresh(reminder)

    logger.info(f"Reminder {reminder_id} marked seen")
    return reminder

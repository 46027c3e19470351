"""Tests for the reminder scheduler."""
from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest

from ngo_ops_core import reminders
from ngo_ops_core.errors import NotFoundError, ValidationError
from ngo_ops_core.models import utcnow


class TestSchedule:
    """Test schedule and its variants."""

    def test_schedule_from_iso_string(self, db, user, make_work_item):
        work_item = make_work_item()

        reminder = reminders.schedule(db, work_item.id, user.id, "2026-11-02T09:30:00")

        assert reminder.remind_at == datetime(2026, 11, 2, 9, 30)
        assert reminder.status == "scheduled"
        assert reminder.channel == "in_app"
        assert reminder.seen_at is None

    def test_timezone_aware_input_is_normalized_to_utc(self, db, user, make_work_item):
        work_item = make_work_item()

        reminder = reminders.schedule(db, work_item.id, user.id, "2026-11-02T09:30:00+02:00")

        assert reminder.remind_at == datetime(2026, 11, 2, 7, 30)

    def test_unparseable_timestamp(self, db, user, make_work_item):
        work_item = make_work_item()

        with pytest.raises(ValidationError) as exc_info:
            reminders.schedule(db, work_item.id, user.id, "next tuesday-ish")
        assert exc_info.value.field == "remind_at"

    def test_past_timestamp_is_accepted(self, db, user, make_work_item):
        work_item = make_work_item()
        past = utcnow() - timedelta(days=2)

        reminder = reminders.schedule(db, work_item.id, user.id, past)

        assert reminder.remind_at == past

    def test_duplicates_are_permitted(self, db, user, make_work_item):
        work_item = make_work_item()
        when = datetime(2026, 12, 1, 8, 0)

        first = reminders.schedule(db, work_item.id, user.id, when)
        second = reminders.schedule(db, work_item.id, user.id, when)

        assert first.id != second.id

    def test_unknown_references(self, db, user, make_work_item):
        work_item = make_work_item()
        with pytest.raises(NotFoundError):
            reminders.schedule(db, uuid4(), user.id, utcnow())
        with pytest.raises(NotFoundError):
            reminders.schedule(db, work_item.id, uuid4(), utcnow())

    def test_schedule_in_days(self, db, user, make_work_item):
        work_item = make_work_item()
        before = utcnow()

        reminder = reminders.schedule_in(db, work_item.id, user.id, 3)

        assert before + timedelta(days=3) <= reminder.remind_at <= utcnow() + timedelta(days=3)


class TestDefaultReminder:
    """Test the default reminder ahead of the due date."""

    def test_goes_to_owner_before_due_date(self, db, user, other_user, make_work_item):
        work_item = make_work_item(due_date=date(2026, 11, 20), owner_user_id=other_user.id, created_by_user_id=user.id)

        reminder = reminders.schedule_default_for_work_item(db, work_item)

        assert reminder.user_id == other_user.id
        assert reminder.remind_at == datetime(2026, 11, 17)

    def test_falls_back_to_creator(self, db, user, make_work_item):
        work_item = make_work_item(due_date=date(2026, 11, 20), created_by_user_id=user.id)

        reminder = reminders.schedule_default_for_work_item(db, work_item)

        assert reminder.user_id == user.id

    def test_no_due_date_or_recipient(self, db, user, make_work_item):
        assert reminders.schedule_default_for_work_item(db, make_work_item(owner_user_id=user.id)) is None
        assert reminders.schedule_default_for_work_item(db, make_work_item(due_date=date(2026, 11, 20))) is None


class TestUpcomingAndSeen:
    """Test list_upcoming and mark_seen."""

    def test_upcoming_window_and_order(self, db, user, other_user, make_work_item):
        work_item = make_work_item()
        now = datetime(2026, 10, 18, 12, 0)
        later = reminders.schedule(db, work_item.id, user.id, now + timedelta(hours=30))
        sooner = reminders.schedule(db, work_item.id, user.id, now + timedelta(hours=2))
        reminders.schedule(db, work_item.id, user.id, now + timedelta(hours=60))   # outside 48h
        reminders.schedule(db, work_item.id, user.id, now - timedelta(hours=1))    # already past
        reminders.schedule(db, work_item.id, other_user.id, now + timedelta(hours=1))

        upcoming = reminders.list_upcoming(db, user.id, now=now)

        assert [r.id for r in upcoming] == [sooner.id, later.id]
        assert [r.id for r in reminders.list_upcoming(db, user.id, within_hours=12, now=now)] == [sooner.id]

    def test_seen_reminders_are_hidden(self, db, user, make_work_item):
        work_item = make_work_item()
        now = datetime(2026, 10, 18, 12, 0)
        reminder = reminders.schedule(db, work_item.id, user.id, now + timedelta(hours=1))

        reminders.mark_seen(db, reminder.id)

        assert reminders.list_upcoming(db, user.id, now=now) == []

    def test_mark_seen_is_idempotent(self, db, user, make_work_item):
        work_item = make_work_item()
        reminder = reminders.schedule(db, work_item.id, user.id, utcnow())

        first = reminders.mark_seen(db, reminder.id)
        seen_at = first.seen_at
        second = reminders.mark_seen(db, reminder.id)

        assert second.seen_at == seen_at
        assert second.status == "seen"

    def test_mark_seen_unknown(self, db):
        with pytest.raises(NotFoundError):
            reminders.mark_seen(db, uuid4())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

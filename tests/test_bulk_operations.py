"""Tests for bulk operations across Work Items."""
from datetime import date, timedelta
from uuid import uuid4

import pytest

from ngo_ops_core import bulk_operations, crud
from ngo_ops_core.config import get_settings
from ngo_ops_core.errors import NotFoundError, PartialBulkFailure, ValidationError
from ngo_ops_core.models import WorkItemStatus
from ngo_ops_core.schemas import BulkRequest, BumpDueDates, ReassignOwner, SetStatus


class TestSetStatus:
    """Test bulk status changes."""

    def test_partial_success_is_reported_per_id(self, db, user, make_work_item):
        """Invalid items fail individually; the rest are applied."""
        ok_1 = make_work_item(status=WorkItemStatus.IN_PROGRESS)
        invalid = make_work_item(status=WorkItemStatus.DRAFT)
        ok_2 = make_work_item(status=WorkItemStatus.WAITING_ON_NGO)

        result = bulk_operations.apply_bulk(
            db, [ok_1.id, invalid.id, ok_2.id], SetStatus(target=WorkItemStatus.SUBMITTED), user.id
        )

        assert [r.id for r in result.results] == [ok_1.id, invalid.id, ok_2.id]
        assert [r.ok for r in result.results] == [True, False, True]
        assert result.results[1].error_code == "invalid_transition"
        assert not result.all_succeeded

        assert crud.get_work_item(db, ok_1.id).status == WorkItemStatus.SUBMITTED
        assert crud.get_work_item(db, invalid.id).status == WorkItemStatus.DRAFT
        assert crud.get_work_item(db, ok_2.id).status == WorkItemStatus.SUBMITTED

    def test_gate_failures_are_reported(self, db, user, make_work_item):
        gated = make_work_item(status=WorkItemStatus.IN_PROGRESS, evidence_required=True)
        free = make_work_item(status=WorkItemStatus.IN_PROGRESS)

        result = bulk_operations.apply_bulk(db, [gated.id, free.id], SetStatus(target=WorkItemStatus.COMPLETE), user.id)

        assert result.results[0].error_code == "precondition_failed"
        assert result.results[1].ok

    def test_unknown_id_is_reported_not_raised(self, db, user, make_work_item):
        known = make_work_item(status=WorkItemStatus.IN_PROGRESS)
        missing_id = uuid4()

        result = bulk_operations.apply_bulk(db, [missing_id, known.id], SetStatus(target=WorkItemStatus.CANCELED), user.id)

        assert result.results[0].error_code == "not_found"
        assert result.results[1].ok

    def test_already_in_target_is_skipped(self, db, user, make_work_item):
        item = make_work_item(status=WorkItemStatus.SUBMITTED)

        result = bulk_operations.apply_bulk(db, [item.id], SetStatus(target=WorkItemStatus.SUBMITTED), user.id)

        assert result.results[0].ok
        assert result.results[0].skipped

    def test_raise_for_failures(self, db, user, make_work_item):
        item = make_work_item(status=WorkItemStatus.COMPLETE)
        result = bulk_operations.apply_bulk(db, [item.id], SetStatus(target=WorkItemStatus.IN_PROGRESS), user.id)

        with pytest.raises(PartialBulkFailure) as exc_info:
            result.raise_for_failures()
        assert exc_info.value.failed_count == 1
        assert len(exc_info.value.results) == 1


class TestReassignOwner:
    """Test bulk reassignment."""

    def test_reassign_writes_owner_and_history(self, db, user, other_user, make_work_item):
        items = [make_work_item(owner_user_id=user.id) for _ in range(3)]

        result = bulk_operations.apply_bulk(db, [i.id for i in items], ReassignOwner(user_id=other_user.id), user.id)

        assert result.all_succeeded
        for item in items:
            db.refresh(item)
            assert item.owner_user_id == other_user.id
            assert crud.get_work_item_history(db, item.id)[0].change_type == "reassigned"

    def test_reassign_ignores_status(self, db, user, other_user, make_work_item):
        item = make_work_item(status=WorkItemStatus.COMPLETE)

        result = bulk_operations.apply_bulk(db, [item.id], ReassignOwner(user_id=other_user.id), user.id)

        assert result.all_succeeded

    def test_reassign_to_unknown_user(self, db, user, make_work_item):
        item = make_work_item()
        with pytest.raises(NotFoundError):
            bulk_operations.apply_bulk(db, [item.id], ReassignOwner(user_id=uuid4()), user.id)


class TestBumpDueDates:
    """Test bulk due date shifts."""

    def test_bump_shifts_dated_items_and_skips_undated(self, db, user, make_work_item):
        dated = make_work_item(due_date=date(2026, 3, 10))
        undated = make_work_item(due_date=None)

        result = bulk_operations.apply_bulk(db, [dated.id, undated.id], BumpDueDates(delta_days=7), user.id)

        assert result.all_succeeded
        assert result.results[1].skipped
        db.refresh(dated)
        db.refresh(undated)
        assert dated.due_date == date(2026, 3, 17)
        assert undated.due_date is None

    def test_negative_bump(self, db, user, make_work_item):
        item = make_work_item(due_date=date(2026, 3, 10))

        bulk_operations.apply_bulk(db, [item.id], BumpDueDates(delta_days=-10), user.id)

        db.refresh(item)
        assert item.due_date == date(2026, 3, 10) - timedelta(days=10)


class TestBatchLimits:
    def test_duplicate_ids_processed_once(self, db, user, make_work_item):
        item = make_work_item(due_date=date(2026, 3, 10))

        result = bulk_operations.apply_bulk(db, [item.id, item.id], BumpDueDates(delta_days=1), user.id)

        assert len(result.results) == 1
        db.refresh(item)
        assert item.due_date == date(2026, 3, 11)

    def test_too_many_ids(self, db, user):
        ids = [uuid4() for _ in range(get_settings().bulk_max_items + 1)]
        with pytest.raises(ValidationError):
            bulk_operations.apply_bulk(db, ids, BumpDueDates(delta_days=1), user.id)

    def test_request_schema_discriminates_operation(self):
        request = BulkRequest.model_validate({
            "ids": [str(uuid4())],
            "operation": {"kind": "bump_due_dates", "delta_days": 3},
        })
        assert isinstance(request.operation, BumpDueDates)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

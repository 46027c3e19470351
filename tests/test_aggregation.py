"""Tests for dashboard aggregation."""
from datetime import datetime, timedelta

import pytest

from ngo_ops_core import aggregation, evidence, schemas
from ngo_ops_core.models import (
    EvidenceStatus,
    ModuleType,
    NgoStatus,
    WorkItemStatus,
)
from ngo_ops_core.schemas import AggregationScope

NOW = datetime(2026, 10, 18, 12, 0)
TODAY = NOW.date()


def _days(n):
    return TODAY + timedelta(days=n)


class TestDueWindows:
    """Test due-window and overdue counts."""

    def test_due_window_example(self, db, make_work_item):
        """Items at +2, +10, +40 and one at -1."""
        make_work_item(due_date=_days(2))
        make_work_item(due_date=_days(10))
        make_work_item(due_date=_days(40))
        make_work_item(due_date=_days(-1))

        windows = {w.days: w.count for w in aggregation.get_due_window_counts(db, now=NOW)}

        assert aggregation.get_overdue_count(db, now=NOW) == 1
        assert windows == {7: 1, 30: 2, 90: 3}

    def test_windows_are_monotonic(self, db, make_work_item):
        for offset in (0, 3, 7, 8, 29, 30, 31, 89, 90, 91, 200):
            make_work_item(due_date=_days(offset))

        counts = [w.count for w in aggregation.get_due_window_counts(db, now=NOW)]

        assert counts == sorted(counts)
        assert counts == [3, 6, 9]

    def test_due_today_is_not_overdue(self, db, make_work_item):
        make_work_item(due_date=TODAY)

        assert aggregation.get_overdue_count(db, now=NOW) == 0
        assert aggregation.get_due_window_counts(db, now=NOW)[0].count == 1

    def test_only_active_statuses_count(self, db, make_work_item):
        for status in (WorkItemStatus.DRAFT, WorkItemStatus.APPROVED, WorkItemStatus.COMPLETE, WorkItemStatus.CANCELED):
            make_work_item(status=status, due_date=_days(-5))
            make_work_item(status=status, due_date=_days(1))
        make_work_item(status=WorkItemStatus.WAITING_ON_HPG, due_date=_days(-5))

        assert aggregation.get_overdue_count(db, now=NOW) == 1
        assert aggregation.get_due_window_counts(db, now=NOW)[0].count == 0

    def test_undated_items_are_ignored(self, db, make_work_item):
        make_work_item(due_date=None)

        assert aggregation.get_overdue_count(db, now=NOW) == 0
        assert all(w.count == 0 for w in aggregation.get_due_window_counts(db, now=NOW))


class TestScope:
    """Test scope filters and the empty-scope short-circuit."""

    def test_bundle_scope(self, db, make_ngo, make_work_item):
        north = make_ngo("North Trust", bundle="north")
        south = make_ngo("South Trust", bundle="south")
        make_work_item(ngo_id=north.id, due_date=_days(-1))
        make_work_item(ngo_id=south.id, due_date=_days(-1))
        make_work_item(ngo_id=south.id, due_date=_days(-2))

        assert aggregation.get_overdue_count(db, AggregationScope(bundle="north"), NOW) == 1
        assert aggregation.get_overdue_count(db, AggregationScope(bundle="south"), NOW) == 2
        assert aggregation.get_overdue_count(db, None, NOW) == 3

    def test_empty_scope_short_circuits(self, db, make_ngo, make_work_item):
        make_ngo("North Trust", bundle="north", status=NgoStatus.AT_RISK)
        make_work_item(due_date=_days(-1), evidence_required=True)

        scope = AggregationScope(bundle="does-not-exist")
        dashboard = aggregation.get_dashboard(db, scope, NOW)

        assert dashboard.kpis == schemas.DashboardKpis()
        assert all(w.count == 0 for w in dashboard.due_windows)
        assert dashboard.workload_by_department == []
        assert dashboard.evidence_pending == []
        assert dashboard.at_risk_ngos == []
        assert aggregation.get_ngo_health(db, scope, NOW) == []
        assert aggregation.get_open_by_module(db, scope) == []

    def test_empty_ngo_id_list_matches_nothing(self, db, make_work_item):
        make_work_item(due_date=_days(-1))

        assert aggregation.get_overdue_count(db, AggregationScope(ngo_ids=[]), NOW) == 0

    def test_module_scope(self, db, make_work_item):
        make_work_item(module=ModuleType.FINANCE, due_date=_days(-1))
        make_work_item(module=ModuleType.HR, due_date=_days(-1))

        assert aggregation.get_overdue_count(db, AggregationScope(module=ModuleType.FINANCE), NOW) == 1


class TestEvidencePending:
    """Test the evidence-pending listing."""

    def test_listing_sorted_by_due_date_nulls_last(self, db, user, make_ngo, make_org_unit, make_work_item):
        ngo = make_ngo("Helping Hands Foundation", common_name="Helping Hands")
        finance = make_org_unit("Finance")
        undated = make_work_item(title="Undated", evidence_required=True)
        late = make_work_item(title="Late", evidence_required=True, due_date=_days(20),
                              ngo_id=ngo.id, department_id=finance.id, owner_user_id=user.id)
        soon = make_work_item(title="Soon", evidence_required=True, due_date=_days(1))
        make_work_item(title="Approved", evidence_required=True, evidence_status=EvidenceStatus.APPROVED)
        make_work_item(title="Not required", evidence_required=False)
        make_work_item(title="Done", status=WorkItemStatus.COMPLETE, evidence_required=True)

        rows = aggregation.get_evidence_pending(db)

        assert [r.id for r in rows] == [soon.id, late.id, undated.id]
        assert rows[1].ngo_name == "Helping Hands"
        assert rows[1].department == "Finance"
        assert rows[1].owner == "Casey Coordinator"
        assert rows[0].ngo_name == "-"
        assert rows[0].department == "Unassigned"
        assert aggregation.get_evidence_pending_count(db) == 3

    def test_listing_is_capped(self, db, make_work_item):
        for _ in range(5):
            make_work_item(evidence_required=True)

        assert len(aggregation.get_evidence_pending(db, limit=2)) == 2


class TestWorkloadAndAtRisk:
    """Test workload-by-department and at-risk NGO listings."""

    def test_workload_by_department(self, db, make_org_unit, make_work_item):
        program = make_org_unit("Program")
        curriculum = make_org_unit("Program", "Curriculum")
        hr = make_org_unit("HR")
        make_work_item(department_id=program.id)
        make_work_item(department_id=curriculum.id)
        make_work_item(department_id=hr.id)
        make_work_item(department_id=None)
        make_work_item(department_id=None)
        make_work_item(department_id=None)
        make_work_item(department_id=hr.id, status=WorkItemStatus.COMPLETE)

        workload = aggregation.get_workload_by_department(db)

        assert [(w.department, w.count) for w in workload] == [
            ("Unassigned", 3),
            ("Program", 2),
            ("HR", 1),
        ]

    def test_at_risk_listing(self, db, make_ngo):
        make_ngo("Zeta Relief", bundle="north", status=NgoStatus.AT_RISK, city="Accra", country="Ghana")
        make_ngo("Alpha Aid", bundle="north", status=NgoStatus.AT_RISK)
        make_ngo("Beta Care", bundle="south", status=NgoStatus.AT_RISK)
        make_ngo("Gamma Health", bundle="north", status=NgoStatus.ACTIVE)

        rows = aggregation.get_at_risk_ngos(db, AggregationScope(bundle="north"))

        assert [r.name for r in rows] == ["Alpha Aid", "Zeta Relief"]
        assert rows[0].location == "-"
        assert rows[1].location == "Accra, Ghana"
        assert aggregation.get_at_risk_ngo_count(db) == 3
        assert len(aggregation.get_at_risk_ngos(db, limit=1)) == 1


class TestDashboard:
    """Test the combined dashboard."""

    def test_dashboard_kpis(self, db, user, make_ngo, make_work_item):
        ngo = make_ngo(status=NgoStatus.AT_RISK)
        item = make_work_item(ngo_id=ngo.id, due_date=_days(5), evidence_required=True)
        make_work_item(ngo_id=ngo.id, due_date=_days(-3))
        evidence.attach_document(
            db,
            schemas.DocumentCreate(file_name="a.pdf", file_path="a.pdf", work_item_id=item.id),
            user.id,
        )

        dashboard = aggregation.get_dashboard(db, now=NOW)

        assert dashboard.kpis.due_in_7_days == 1
        assert dashboard.kpis.due_in_90_days == 1
        assert dashboard.kpis.overdue == 1
        assert dashboard.kpis.at_risk_ngos == 1
        assert dashboard.kpis.pending_documents == 1
        assert dashboard.kpis.evidence_pending == 1
        assert [w.days for w in dashboard.due_windows] == [7, 30, 90]

    def test_pending_documents_follow_module_scope(self, db, user, make_work_item):
        finance = make_work_item(module=ModuleType.FINANCE)
        hr = make_work_item(module=ModuleType.HR)
        for work_item in (finance, hr, hr):
            evidence.attach_document(
                db,
                schemas.DocumentCreate(file_name="a.pdf", file_path="a.pdf", work_item_id=work_item.id),
                user.id,
            )

        assert aggregation.get_pending_documents_count(db, AggregationScope(module=ModuleType.HR)) == 2
        assert aggregation.get_pending_documents_count(db) == 3


class TestReports:
    """Test NGO health, module distribution, throughput and filter options."""

    def test_ngo_health(self, db, make_ngo, make_work_item):
        busy = make_ngo("Busy Org", country="Kenya")
        quiet = make_ngo("Quiet Org")
        make_ngo("Idle Org")
        make_work_item(ngo_id=busy.id, due_date=_days(-1))
        make_work_item(ngo_id=busy.id, evidence_required=True)
        make_work_item(ngo_id=busy.id, status=WorkItemStatus.DRAFT)
        make_work_item(ngo_id=quiet.id)
        make_work_item(ngo_id=quiet.id, status=WorkItemStatus.COMPLETE)

        health = aggregation.get_ngo_health(db, now=NOW)

        assert [h.name for h in health] == ["Busy Org", "Quiet Org"]
        assert (health[0].open_items, health[0].overdue_items, health[0].missing_evidence_items) == (3, 1, 1)
        assert health[0].country == "Kenya"
        assert (health[1].open_items, health[1].overdue_items, health[1].missing_evidence_items) == (1, 0, 0)

    def test_open_by_module(self, db, make_work_item):
        make_work_item(module=ModuleType.FINANCE)
        make_work_item(module=ModuleType.FINANCE)
        make_work_item(module=ModuleType.LEGAL)
        make_work_item(module=ModuleType.LEGAL, status=WorkItemStatus.CANCELED)

        distribution = aggregation.get_open_by_module(db)

        assert [(d.module, d.count) for d in distribution] == [("finance", 2), ("legal", 1)]

    def test_monthly_throughput(self, db, make_work_item):
        make_work_item(created_at=datetime(2026, 10, 2), status=WorkItemStatus.COMPLETE, completed_at=datetime(2026, 10, 10))
        make_work_item(created_at=datetime(2026, 9, 15))
        make_work_item(created_at=datetime(2025, 1, 1))  # outside the window

        report = aggregation.get_monthly_throughput(db, months=3, now=NOW)

        assert [m.key for m in report.created_per_month] == ["2026-08", "2026-09", "2026-10"]
        assert [m.label for m in report.created_per_month] == ["Aug 2026", "Sep 2026", "Oct 2026"]
        assert [m.count for m in report.created_per_month] == [0, 1, 1]
        assert [m.count for m in report.completed_per_month] == [0, 0, 1]

    def test_throughput_crosses_year_boundary(self, db):
        report = aggregation.get_monthly_throughput(db, months=12, now=datetime(2026, 2, 5))

        assert report.created_per_month[0].key == "2025-03"
        assert report.created_per_month[-1].key == "2026-02"

    def test_filter_options(self, db, make_ngo, make_work_item):
        make_ngo("A", bundle="north", country="Kenya", state_province="Nairobi")
        make_ngo("B", bundle="south", country="Ghana")
        make_ngo("C")
        make_work_item(module=ModuleType.HR)

        options = aggregation.get_filter_options(db)

        assert options.bundles == ["north", "south"]
        assert options.countries == ["Ghana", "Kenya"]
        assert options.states == ["Nairobi"]
        assert options.modules == ["hr"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""Read-side rollups over the current Work Item, Document and NGO rows.

Nothing here is persisted; every function recomputes from the store. A scope
whose NGO filters match no NGO (or whose department filter is an empty list)
short-circuits to zero/empty results instead of falling through to an
unscoped query.

Due dates are calendar dates: an item due today is in every due window and
is not overdue.
"""
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Query, Session, joinedload

from . import crud, models
from .config import get_settings
from .schemas import (
    AggregationScope,
    AtRiskNgoRow,
    DashboardData,
    DashboardFilterOptions,
    DashboardKpis,
    DepartmentWorkload,
    DueWindowCount,
    EvidencePendingRow,
    ModuleDistribution,
    MonthlyMetric,
    NgoHealthSnapshot,
    ThroughputReport,
)
from .work_item_state_machine import ACTIVE_STATUSES, is_terminal_status

logger = logging.getLogger("ngo-ops.aggregation")

UNASSIGNED = "Unassigned"
KPI_WINDOWS = (7, 30, 90)


def _today(now: Optional[datetime]) -> date:
    return (now or models.utcnow()).date()


def resolve_scope_ngo_ids(db: Session, scope: AggregationScope) -> Optional[list[UUID]]:
    """
    Resolve the NGO part of a scope to a list of NGO ids.

    Returns:
        None when the scope has no NGO filters, otherwise the (possibly empty) id list
    """
    if not scope.has_ngo_filters:
        return None
    ngos = crud.get_ngos(
        db,
        bundle=scope.bundle,
        country=scope.country,
        state_province=scope.state_province,
        ngo_ids=scope.ngo_ids,
    )
    return [ngo.id for ngo in ngos]


def _scoped_query(
    db: Session,
    scope: AggregationScope,
    statuses: Optional[Iterable[models.WorkItemStatus]] = ACTIVE_STATUSES,
    ngo_ids: Optional[list[UUID]] = None,
) -> Optional[Query]:
    """
    Work item query narrowed by scope and status.

    Returns None when the scope matches nothing, so callers can short-circuit.
    """
    if ngo_ids is None:
        ngo_ids = resolve_scope_ngo_ids(db, scope)
    if ngo_ids is not None and not ngo_ids:
        return None
    if scope.department_ids is not None and not scope.department_ids:
        return None

    query = db.query(models.WorkItem)
    if statuses is not None:
        query = query.filter(models.WorkItem.status.in_(list(statuses)))
    if ngo_ids is not None:
        query = query.filter(models.WorkItem.ngo_id.in_(ngo_ids))
    if scope.module:
        query = query.filter(models.WorkItem.module == scope.module)
    if scope.department_ids:
        query = query.filter(models.WorkItem.department_id.in_(scope.department_ids))
    return query


def _evidence_pending_filter():
    return and_(
        models.WorkItem.evidence_required.is_(True),
        or_(
            models.WorkItem.evidence_status.is_(None),
            models.WorkItem.evidence_status != models.EvidenceStatus.APPROVED,
        ),
    )


# =============================================================================
# KPI building blocks
# =============================================================================


def get_due_window_counts(
    db: Session,
    scope: Optional[AggregationScope] = None,
    windows: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
) -> list[DueWindowCount]:
    """Count active items due within each window of days, today included."""
    scope = scope or AggregationScope()
    windows = sorted(windows if windows is not None else get_settings().due_windows_days)
    today = _today(now)

    query = _scoped_query(db, scope)
    if query is None:
        return [DueWindowCount(days=days, count=0) for days in windows]

    due_dates = [
        row[0] for row in query.with_entities(models.WorkItem.due_date).filter(
            models.WorkItem.due_date.isnot(None),
            models.WorkItem.due_date >= today,
            models.WorkItem.due_date <= today + timedelta(days=max(windows, default=0)),
        ).all()
    ]
    return [
        DueWindowCount(days=days, count=sum(1 for due in due_dates if due <= today + timedelta(days=days)))
        for days in windows
    ]


def get_overdue_count(
    db: Session,
    scope: Optional[AggregationScope] = None,
    now: Optional[datetime] = None,
) -> int:
    """Count active items whose due date is before today."""
    query = _scoped_query(db, scope or AggregationScope())
    if query is None:
        return 0
    return query.filter(models.WorkItem.due_date < _today(now)).count()


def get_evidence_pending_count(db: Session, scope: Optional[AggregationScope] = None) -> int:
    query = _scoped_query(db, scope or AggregationScope())
    if query is None:
        return 0
    return query.filter(_evidence_pending_filter()).count()


def get_evidence_pending(
    db: Session,
    scope: Optional[AggregationScope] = None,
    limit: Optional[int] = None,
) -> list[EvidencePendingRow]:
    """
    Active items that require evidence not yet approved.

    Sorted by due date ascending with undated items last, capped at ``limit``
    (``evidence_pending_limit`` by default).
    """
    limit = limit if limit is not None else get_settings().evidence_pending_limit
    query = _scoped_query(db, scope or AggregationScope())
    if query is None:
        return []

    work_items = query.options(
        joinedload(models.WorkItem.ngo),
        joinedload(models.WorkItem.department),
        joinedload(models.WorkItem.owner),
    ).filter(
        _evidence_pending_filter()
    ).order_by(
        models.WorkItem.due_date.asc().nulls_last(),
        models.WorkItem.created_at.asc(),
    ).limit(limit).all()

    return [
        EvidencePendingRow(
            id=wi.id,
            title=wi.title,
            ngo_name=wi.ngo.display_name if wi.ngo else "-",
            department=wi.department.department_name if wi.department else UNASSIGNED,
            owner=wi.owner.display_name if wi.owner else UNASSIGNED,
            due_date=wi.due_date,
            evidence_status=wi.evidence_status,
        )
        for wi in work_items
    ]


def get_workload_by_department(
    db: Session,
    scope: Optional[AggregationScope] = None,
) -> list[DepartmentWorkload]:
    """Active item counts per department name, largest first."""
    query = _scoped_query(db, scope or AggregationScope())
    if query is None:
        return []

    rows = query.outerjoin(
        models.OrgUnit, models.WorkItem.department_id == models.OrgUnit.id
    ).with_entities(
        models.OrgUnit.department_name,
        func.count(models.WorkItem.id),
    ).group_by(
        models.OrgUnit.department_name
    ).all()

    counts: Counter = Counter()
    for department_name, count in rows:
        counts[department_name or UNASSIGNED] += count

    return [
        DepartmentWorkload(department=name, count=count)
        for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def _at_risk_query(db: Session, scope: AggregationScope) -> Optional[Query]:
    query = db.query(models.Ngo).filter(models.Ngo.status == models.NgoStatus.AT_RISK)
    if scope.bundle:
        query = query.filter(models.Ngo.bundle == scope.bundle)
    if scope.country:
        query = query.filter(models.Ngo.country == scope.country)
    if scope.state_province:
        query = query.filter(models.Ngo.state_province == scope.state_province)
    if scope.ngo_ids is not None:
        if not scope.ngo_ids:
            return None
        query = query.filter(models.Ngo.id.in_(scope.ngo_ids))
    return query


def get_at_risk_ngo_count(db: Session, scope: Optional[AggregationScope] = None) -> int:
    query = _at_risk_query(db, scope or AggregationScope())
    return query.count() if query is not None else 0


def get_at_risk_ngos(
    db: Session,
    scope: Optional[AggregationScope] = None,
    limit: Optional[int] = None,
) -> list[AtRiskNgoRow]:
    """NGOs flagged at risk, by legal name, capped at ``limit`` (``at_risk_limit`` by default)."""
    limit = limit if limit is not None else get_settings().at_risk_limit
    query = _at_risk_query(db, scope or AggregationScope())
    if query is None:
        return []

    ngos = query.order_by(models.Ngo.legal_name.asc()).limit(limit).all()
    return [
        AtRiskNgoRow(id=ngo.id, name=ngo.display_name, bundle=ngo.bundle, location=ngo.location)
        for ngo in ngos
    ]


def get_pending_documents_count(db: Session, scope: Optional[AggregationScope] = None) -> int:
    """
    Count documents awaiting review within a scope.

    With a module or department filter the count follows the scoped work
    items; otherwise it follows the scoped NGOs.
    """
    scope = scope or AggregationScope()
    ngo_ids = resolve_scope_ngo_ids(db, scope)

    if scope.module or scope.department_ids is not None:
        query = _scoped_query(db, scope, statuses=None, ngo_ids=ngo_ids)
        if query is None:
            return 0
        work_item_ids = [row[0] for row in query.with_entities(models.WorkItem.id).all()]
        return crud.count_pending_documents(db, work_item_ids=work_item_ids)

    return crud.count_pending_documents(db, ngo_ids=ngo_ids)


# =============================================================================
# Dashboard
# =============================================================================


def get_dashboard(
    db: Session,
    scope: Optional[AggregationScope] = None,
    now: Optional[datetime] = None,
) -> DashboardData:
    """
    Compute the full operations dashboard for a scope.

    Args:
        db: Database session
        scope: Optional filters; None means everything
        now: Reference time (naive UTC); defaults to the current time

    Returns:
        DashboardData with KPIs, due windows, workload and the two listings
    """
    scope = scope or AggregationScope()
    now = now or models.utcnow()
    settings = get_settings()
    windows = sorted(set(settings.due_windows_days) | set(KPI_WINDOWS))

    ngo_ids = resolve_scope_ngo_ids(db, scope)
    if (ngo_ids is not None and not ngo_ids) or (scope.department_ids is not None and not scope.department_ids):
        logger.debug("Dashboard scope matches no NGOs or departments; returning empty dashboard")
        return DashboardData(
            kpis=DashboardKpis(),
            due_windows=[DueWindowCount(days=days, count=0) for days in settings.due_windows_days],
        )

    window_counts = {w.days: w.count for w in get_due_window_counts(db, scope, windows, now)}

    kpis = DashboardKpis(
        due_in_7_days=window_counts[7],
        due_in_30_days=window_counts[30],
        due_in_90_days=window_counts[90],
        overdue=get_overdue_count(db, scope, now),
        at_risk_ngos=get_at_risk_ngo_count(db, scope),
        pending_documents=get_pending_documents_count(db, scope),
        evidence_pending=get_evidence_pending_count(db, scope),
    )

    return DashboardData(
        kpis=kpis,
        due_windows=[
            DueWindowCount(days=days, count=window_counts[days])
            for days in sorted(settings.due_windows_days)
        ],
        workload_by_department=get_workload_by_department(db, scope),
        evidence_pending=get_evidence_pending(db, scope),
        at_risk_ngos=get_at_risk_ngos(db, scope),
    )


# =============================================================================
# Reports
# =============================================================================


def get_ngo_health(
    db: Session,
    scope: Optional[AggregationScope] = None,
    now: Optional[datetime] = None,
) -> list[NgoHealthSnapshot]:
    """
    Open, overdue and missing-evidence counts per NGO.

    Only NGOs with at least one non-zero count are returned, busiest first.
    """
    scope = scope or AggregationScope()
    today = _today(now)
    open_statuses = [s for s in models.WorkItemStatus if not is_terminal_status(s)]

    query = _scoped_query(db, scope, statuses=open_statuses)
    if query is None:
        return []

    missing_evidence = and_(
        models.WorkItem.evidence_required.is_(True),
        or_(
            models.WorkItem.evidence_status.is_(None),
            models.WorkItem.evidence_status == models.EvidenceStatus.MISSING,
        ),
    )
    rows = query.filter(
        models.WorkItem.ngo_id.isnot(None)
    ).with_entities(
        models.WorkItem.ngo_id,
        func.count(models.WorkItem.id),
        func.sum(case((models.WorkItem.due_date < today, 1), else_=0)),
        func.sum(case((missing_evidence, 1), else_=0)),
    ).group_by(
        models.WorkItem.ngo_id
    ).all()

    counts = {ngo_id: (open_count, overdue or 0, missing or 0) for ngo_id, open_count, overdue, missing in rows}
    if not counts:
        return []

    ngos = db.query(models.Ngo).filter(models.Ngo.id.in_(list(counts))).all()
    snapshots = [
        NgoHealthSnapshot(
            id=ngo.id,
            name=ngo.display_name,
            bundle=ngo.bundle,
            country=ngo.country,
            status=ngo.status,
            open_items=counts[ngo.id][0],
            overdue_items=counts[ngo.id][1],
            missing_evidence_items=counts[ngo.id][2],
        )
        for ngo in ngos
        if any(counts[ngo.id])
    ]
    snapshots.sort(key=lambda s: (-s.open_items, s.name))
    return snapshots


def get_open_by_module(db: Session, scope: Optional[AggregationScope] = None) -> list[ModuleDistribution]:
    """Non-terminal item counts per module, largest first."""
    open_statuses = [s for s in models.WorkItemStatus if not is_terminal_status(s)]
    query = _scoped_query(db, scope or AggregationScope(), statuses=open_statuses)
    if query is None:
        return []

    rows = query.with_entities(
        models.WorkItem.module,
        func.count(models.WorkItem.id),
    ).group_by(
        models.WorkItem.module
    ).all()

    return [
        ModuleDistribution(module=module.value, count=count)
        for module, count in sorted(rows, key=lambda r: (-r[1], r[0].value))
    ]


def _month_starts(now: datetime, months: int) -> list[date]:
    year, month = now.year, now.month
    starts = []
    for _ in range(months):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def _bucket_by_month(timestamps: Iterable[datetime], starts: list[date]) -> list[MonthlyMetric]:
    counts = Counter(f"{ts.year:04d}-{ts.month:02d}" for ts in timestamps if ts)
    return [
        MonthlyMetric(
            key=start.strftime("%Y-%m"),
            label=start.strftime("%b %Y"),
            count=counts.get(start.strftime("%Y-%m"), 0),
        )
        for start in starts
    ]


def get_monthly_throughput(
    db: Session,
    scope: Optional[AggregationScope] = None,
    months: int = 12,
    now: Optional[datetime] = None,
) -> ThroughputReport:
    """Created and completed work items per calendar month, current month last, zero-filled."""
    now = now or models.utcnow()
    starts = _month_starts(now, months)
    window_start = datetime.combine(starts[0], datetime.min.time()) if starts else now

    query = _scoped_query(db, scope or AggregationScope(), statuses=None)
    if query is None:
        return ThroughputReport(
            created_per_month=_bucket_by_month([], starts),
            completed_per_month=_bucket_by_month([], starts),
        )

    created = [
        row[0] for row in query.with_entities(models.WorkItem.created_at).filter(
            models.WorkItem.created_at >= window_start
        ).all()
    ]
    completed = [
        row[0] for row in query.with_entities(models.WorkItem.completed_at).filter(
            models.WorkItem.completed_at.isnot(None),
            models.WorkItem.completed_at >= window_start,
        ).all()
    ]
    return ThroughputReport(
        created_per_month=_bucket_by_month(created, starts),
        completed_per_month=_bucket_by_month(completed, starts),
    )


def get_filter_options(db: Session) -> DashboardFilterOptions:
    """Distinct bundles, countries, states and modules present in the data."""

    def distinct(column) -> list[str]:
        return sorted(row[0] for row in db.query(column).filter(column.isnot(None)).distinct().all())

    modules = {row[0].value for row in db.query(models.WorkItem.module).distinct().all()}
    return DashboardFilterOptions(
        bundles=distinct(models.Ngo.bundle),
        countries=distinct(models.Ngo.country),
        states=distinct(models.Ngo.state_province),
        modules=sorted(modules),
    )

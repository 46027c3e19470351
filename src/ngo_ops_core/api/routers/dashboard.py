"""Dashboard API router: KPIs and reports over the current data."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import aggregation
from ...database import get_db
from ...models import ModuleType, Profile
from ...schemas import (
    AggregationScope,
    DashboardData,
    DashboardFilterOptions,
    ModuleDistribution,
    NgoHealthSnapshot,
    ThroughputReport,
)
from ..dependencies import get_current_user

router = APIRouter(tags=["dashboard"])


def get_scope(
    bundle: Optional[str] = None,
    country: Optional[str] = None,
    state_province: Optional[str] = None,
    module: Optional[ModuleType] = None,
    department_id: Optional[list[UUID]] = Query(None),
    ngo_id: Optional[list[UUID]] = Query(None),
) -> AggregationScope:
    """Build an aggregation scope from query parameters."""
    return AggregationScope(
        bundle=bundle,
        country=country,
        state_province=state_province,
        module=module,
        department_ids=department_id,
        ngo_ids=ngo_id,
    )


@router.get("/", response_model=DashboardData)
async def get_dashboard(
    scope: AggregationScope = Depends(get_scope),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """KPIs, due windows, workload and the evidence-pending / at-risk listings."""
    return aggregation.get_dashboard(db, scope)


@router.get("/ngo-health", response_model=list[NgoHealthSnapshot])
async def get_ngo_health(
    scope: AggregationScope = Depends(get_scope),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    return aggregation.get_ngo_health(db, scope)


@router.get("/open-by-module", response_model=list[ModuleDistribution])
async def get_open_by_module(
    scope: AggregationScope = Depends(get_scope),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    return aggregation.get_open_by_module(db, scope)


@router.get("/throughput", response_model=ThroughputReport)
async def get_throughput(
    months: int = Query(12, ge=1, le=36),
    scope: AggregationScope = Depends(get_scope),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Created and completed Work Items per month."""
    return aggregation.get_monthly_throughput(db, scope, months)


@router.get("/filters", response_model=DashboardFilterOptions)
async def get_filter_options(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    return aggregation.get_filter_options(db)

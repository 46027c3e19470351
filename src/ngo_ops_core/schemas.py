"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from .errors import PartialBulkFailure
from .models import (
    WorkItemStatus,
    EvidenceStatus,
    ReviewStatus,
    ReviewDecision,
    Priority,
    ModuleType,
    NgoStatus,
    DocumentCategory,
)


# =============================================================================
# Work Item Schemas
# =============================================================================


class WorkItemCreate(BaseModel):
    """Schema for creating a new Work Item.

    When ``department_id`` is omitted the department is resolved from the module.
    """

    module: ModuleType = Field(..., description="Owning department/domain")
    title: str = Field(..., min_length=1, max_length=255)
    type: Optional[str] = Field(None, max_length=100, description="Free-form work item type")
    description: Optional[str] = None
    status: WorkItemStatus = Field(WorkItemStatus.NOT_STARTED, description="Initial status: draft or not_started")
    priority: Priority = Priority.MEDIUM

    ngo_id: Optional[UUID] = None
    department_id: Optional[UUID] = None
    owner_user_id: Optional[UUID] = None

    due_date: Optional[date] = None
    start_date: Optional[date] = None

    evidence_required: bool = False
    approval_required: bool = False
    approver_user_id: Optional[UUID] = None
    approval_policy: Optional[dict[str, Any]] = None

    dependencies: list[UUID] = Field(default_factory=list, description="Ordering hint, not enforced")
    external_visible: bool = False
    trello_sync: bool = False
    trello_card_id: Optional[str] = Field(None, max_length=100)


class WorkItemUpdate(BaseModel):
    """Schema for updating a Work Item.

    Status is not updatable here; use the transition endpoint.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    ngo_id: Optional[UUID] = None
    department_id: Optional[UUID] = None
    owner_user_id: Optional[UUID] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    evidence_required: Optional[bool] = None
    approval_required: Optional[bool] = None
    approver_user_id: Optional[UUID] = None
    approval_policy: Optional[dict[str, Any]] = None
    dependencies: Optional[list[UUID]] = None
    external_visible: Optional[bool] = None
    trello_sync: Optional[bool] = None
    trello_card_id: Optional[str] = Field(None, max_length=100)


class WorkItemTransition(BaseModel):
    """Schema for transitioning a Work Item status."""

    new_status: WorkItemStatus = Field(..., description="Target status")


class WorkItemResponse(BaseModel):
    """Schema for full Work Item response."""

    id: UUID
    module: ModuleType
    type: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: WorkItemStatus
    priority: Priority

    ngo_id: Optional[UUID] = None
    department_id: Optional[UUID] = None
    owner_user_id: Optional[UUID] = None
    created_by_user_id: Optional[UUID] = None

    due_date: Optional[date] = None
    start_date: Optional[date] = None
    completed_at: Optional[datetime] = None

    evidence_required: bool
    evidence_status: Optional[EvidenceStatus] = None
    approval_required: bool
    approver_user_id: Optional[UUID] = None
    approval_policy: Optional[dict[str, Any]] = None

    dependencies: list[UUID] = Field(default_factory=list)
    external_visible: bool
    trello_sync: bool
    trello_card_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkItemListResponse(BaseModel):
    """Schema for paginated Work Item list."""

    items: list[WorkItemResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class WorkItemHistoryResponse(BaseModel):
    """Schema for Work Item history entries."""

    id: UUID
    work_item_id: UUID
    change_type: str
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by_user_id: Optional[UUID] = None
    changed_at: datetime
    change_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalCreate(BaseModel):
    """Schema for recording an approval decision on a Work Item."""

    decision: ReviewDecision
    notes: Optional[str] = None


class ApprovalResponse(BaseModel):
    """Schema for a recorded approval decision."""

    id: UUID
    work_item_id: UUID
    approver_user_id: Optional[UUID] = None
    decision: ReviewDecision
    notes: Optional[str] = None
    decided_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Document Schemas
# =============================================================================


class DocumentCreate(BaseModel):
    """Schema for registering an uploaded evidence document.

    The file itself lives in blob storage; ``file_path`` is its opaque locator.
    """

    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=1024)
    file_size: Optional[int] = Field(None, ge=0)
    file_type: Optional[str] = Field(None, max_length=100)
    category: DocumentCategory = DocumentCategory.OTHER
    work_item_id: Optional[UUID] = None
    ngo_id: Optional[UUID] = None


class DocumentReview(BaseModel):
    """Schema for a reviewer's decision on a document."""

    decision: ReviewDecision
    notes: Optional[str] = None


class DocumentResponse(BaseModel):
    """Schema for Document response."""

    id: UUID
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    category: DocumentCategory
    work_item_id: Optional[UUID] = None
    ngo_id: Optional[UUID] = None
    uploaded_by_user_id: Optional[UUID] = None
    uploaded_at: datetime
    review_status: ReviewStatus
    reviewer_user_id: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Reminder Schemas
# =============================================================================


class ReminderCreate(BaseModel):
    """Schema for scheduling a reminder.

    ``remind_at`` is parsed by the scheduler so an unparseable value surfaces
    as a validation error from the core rather than from the HTTP layer.
    """

    work_item_id: UUID
    user_id: Optional[UUID] = Field(None, description="Defaults to the acting user")
    remind_at: Union[datetime, str]


class ReminderResponse(BaseModel):
    """Schema for Reminder response."""

    id: UUID
    work_item_id: UUID
    user_id: UUID
    remind_at: datetime
    seen_at: Optional[datetime] = None
    status: str
    channel: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Bulk Operation Schemas
# =============================================================================


class SetStatus(BaseModel):
    """Move every selected item to ``target`` through the lifecycle rules."""

    kind: Literal["set_status"] = "set_status"
    target: WorkItemStatus


class ReassignOwner(BaseModel):
    """Assign every selected item to ``user_id``."""

    kind: Literal["reassign_owner"] = "reassign_owner"
    user_id: UUID


class BumpDueDates(BaseModel):
    """Shift the due date of every selected item that has one."""

    kind: Literal["bump_due_dates"] = "bump_due_dates"
    delta_days: int


BulkOperation = Annotated[
    Union[SetStatus, ReassignOwner, BumpDueDates],
    Field(discriminator="kind"),
]


class BulkRequest(BaseModel):
    """Schema for a bulk request: one operation over many Work Item ids."""

    ids: list[UUID] = Field(..., min_length=1)
    operation: BulkOperation


class BulkItemResult(BaseModel):
    """Outcome of a bulk operation for a single Work Item id."""

    id: UUID
    ok: bool
    skipped: bool = Field(False, description="True when the item needed no change")
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class BulkResult(BaseModel):
    """Per-id results of a bulk operation, in request order."""

    results: list[BulkItemResult]

    @property
    def succeeded(self) -> list[BulkItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[BulkItemResult]:
        return [r for r in self.results if not r.ok]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """Raise ``PartialBulkFailure`` if any item failed."""
        if self.failed:
            raise PartialBulkFailure(self.results, len(self.failed))


# =============================================================================
# Aggregation Schemas
# =============================================================================


class AggregationScope(BaseModel):
    """Filters narrowing an aggregation.

    bundle/country/state_province/ngo_ids scope by partner entity;
    module/department_ids scope the work items directly.
    """

    bundle: Optional[str] = None
    country: Optional[str] = None
    state_province: Optional[str] = None
    module: Optional[ModuleType] = None
    department_ids: Optional[list[UUID]] = None
    ngo_ids: Optional[list[UUID]] = None

    @property
    def has_ngo_filters(self) -> bool:
        return bool(self.bundle or self.country or self.state_province) or self.ngo_ids is not None


class DueWindowCount(BaseModel):
    """Number of active items due within ``days`` from now."""

    days: int
    count: int


class DashboardKpis(BaseModel):
    """Headline counts for the operations dashboard."""

    due_in_7_days: int = 0
    due_in_30_days: int = 0
    due_in_90_days: int = 0
    overdue: int = 0
    at_risk_ngos: int = 0
    pending_documents: int = 0
    evidence_pending: int = 0


class DepartmentWorkload(BaseModel):
    """Active work item count for one department."""

    department: str
    count: int


class EvidencePendingRow(BaseModel):
    """Active item still waiting for approved evidence."""

    id: UUID
    title: str
    ngo_name: str
    department: str
    owner: str
    due_date: Optional[date] = None
    evidence_status: Optional[EvidenceStatus] = None


class AtRiskNgoRow(BaseModel):
    """Partner entity flagged at risk."""

    id: UUID
    name: str
    bundle: Optional[str] = None
    location: str


class DashboardData(BaseModel):
    """Everything the operations dashboard shows for one scope."""

    kpis: DashboardKpis
    due_windows: list[DueWindowCount] = Field(default_factory=list)
    workload_by_department: list[DepartmentWorkload] = Field(default_factory=list)
    evidence_pending: list[EvidencePendingRow] = Field(default_factory=list)
    at_risk_ngos: list[AtRiskNgoRow] = Field(default_factory=list)


class NgoHealthSnapshot(BaseModel):
    """Open, overdue and missing-evidence counts for one partner entity."""

    id: UUID
    name: str
    bundle: Optional[str] = None
    country: Optional[str] = None
    status: NgoStatus
    open_items: int = 0
    overdue_items: int = 0
    missing_evidence_items: int = 0


class ModuleDistribution(BaseModel):
    """Open work item count for one module."""

    module: str
    count: int


class MonthlyMetric(BaseModel):
    """Count of events in one calendar month."""

    key: str      # e.g. 2026-03
    label: str    # e.g. Mar 2026
    count: int


class ThroughputReport(BaseModel):
    """Created and completed work items per month."""

    created_per_month: list[MonthlyMetric]
    completed_per_month: list[MonthlyMetric]


class DashboardFilterOptions(BaseModel):
    """Distinct values available for dashboard filters."""

    bundles: list[str] = Field(default_factory=list)
    countries: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=list)

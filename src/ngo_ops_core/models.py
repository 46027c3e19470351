"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Enum,
    Boolean,
    JSON,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column_type(enum_cls):
    return Enum(enum_cls, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# Enums
# =============================================================================


class WorkItemStatus(str, enum.Enum):
    """Work Item lifecycle status enum.

    Lifecycle: draft -> not_started -> in_progress -> waiting_on_ngo/waiting_on_hpg
    -> submitted -> under_review -> approved/rejected -> complete
    Terminal states: complete, canceled
    """

    DRAFT = "draft"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    WAITING_ON_NGO = "waiting_on_ngo"   # Blocked on the partner entity
    WAITING_ON_HPG = "waiting_on_hpg"   # Blocked on internal staff
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETE = "complete"               # Terminal: successfully finished
    CANCELED = "canceled"               # Terminal: abandoned


class EvidenceStatus(str, enum.Enum):
    """Aggregate evidence state of a Work Item, derived from its documents."""

    MISSING = "missing"
    UPLOADED = "uploaded"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewStatus(str, enum.Enum):
    """Review state of a single Document."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, enum.Enum):
    """Decision a reviewer or approver can record."""

    APPROVED = "approved"
    REJECTED = "rejected"


class Priority(str, enum.Enum):
    """Work Item priority enum."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModuleType(str, enum.Enum):
    """Owning department/domain of a Work Item."""

    NGO_COORDINATION = "ngo_coordination"
    ADMINISTRATION = "administration"
    OPERATIONS = "operations"
    PROGRAM = "program"
    CURRICULUM = "curriculum"
    DEVELOPMENT = "development"
    PARTNERSHIP = "partnership"
    MARKETING = "marketing"
    COMMUNICATIONS = "communications"
    HR = "hr"
    IT = "it"
    FINANCE = "finance"
    LEGAL = "legal"


class NgoStatus(str, enum.Enum):
    """Partner entity status enum."""

    PROSPECT = "prospect"
    ONBOARDING = "onboarding"
    ACTIVE = "active"
    AT_RISK = "at_risk"
    OFFBOARDING = "offboarding"
    CLOSED = "closed"


class DocumentCategory(str, enum.Enum):
    """Document category enum."""

    ONBOARDING = "onboarding"
    COMPLIANCE = "compliance"
    FINANCE = "finance"
    HR = "hr"
    MARKETING = "marketing"
    COMMUNICATIONS = "communications"
    PROGRAM = "program"
    CURRICULUM = "curriculum"
    IT = "it"
    LEGAL = "legal"
    OTHER = "other"


# =============================================================================
# Reference entities
# =============================================================================


class Profile(Base):
    """
    Profile of an internal or partner user.

    Identity and sessions are owned by the external identity provider; this
    row only gives the core something to resolve user references against.
    """

    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255))

    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def __repr__(self) -> str:
        return f"<Profile {self.email}>"


class Ngo(Base):
    """Partner entity coordinated by the organization."""

    __tablename__ = "ngos"

    id = Column(Uuid, primary_key=True, default=uuid4)
    legal_name = Column(String(255), nullable=False)
    common_name = Column(String(255))
    bundle = Column(String(100), index=True)
    country = Column(String(100), index=True)
    state_province = Column(String(100), index=True)
    city = Column(String(100))
    status = Column(_enum_column_type(NgoStatus), nullable=False, default=NgoStatus.PROSPECT, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    work_items = relationship("WorkItem", back_populates="ngo")

    @property
    def display_name(self) -> str:
        return self.common_name or self.legal_name

    @property
    def location(self) -> str:
        return ", ".join(part for part in [self.city, self.state_province, self.country] if part) or "-"

    def __repr__(self) -> str:
        return f"<Ngo {self.display_name} ({self.status.value})>"


class OrgUnit(Base):
    """Department or sub-department, used as a grouping dimension."""

    __tablename__ = "org_units"

    id = Column(Uuid, primary_key=True, default=uuid4)
    department_name = Column(String(100), nullable=False, index=True)
    sub_department_name = Column(String(100), nullable=True)
    lead_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    lead = relationship("Profile")

    def __repr__(self) -> str:
        suffix = f" / {self.sub_department_name}" if self.sub_department_name else ""
        return f"<OrgUnit {self.department_name}{suffix}>"


# =============================================================================
# Work Items and their owned rows
# =============================================================================


class WorkItem(Base):
    """
    Work Item: the unit of trackable effort.

    The Work Item is the aggregate root for evidence and approval. Documents,
    reminders, approval decisions and history rows are owned by it and are
    deleted with it.
    """

    __tablename__ = "work_items"

    id = Column(Uuid, primary_key=True, default=uuid4)

    # Classification
    module = Column(_enum_column_type(ModuleType), nullable=False, index=True)
    type = Column(String(100), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Ownership
    ngo_id = Column(Uuid, ForeignKey("ngos.id", ondelete="SET NULL"), nullable=True, index=True)
    department_id = Column(Uuid, ForeignKey("org_units.id", ondelete="SET NULL"), nullable=True, index=True)
    owner_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    # Lifecycle
    status = Column(
        _enum_column_type(WorkItemStatus),
        nullable=False,
        default=WorkItemStatus.NOT_STARTED,
        index=True
    )
    priority = Column(_enum_column_type(Priority), nullable=False, default=Priority.MEDIUM)
    due_date = Column(Date, nullable=True, index=True)
    start_date = Column(Date, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Evidence / approval
    evidence_required = Column(Boolean, nullable=False, default=False)
    evidence_status = Column(_enum_column_type(EvidenceStatus), nullable=True)
    approval_required = Column(Boolean, nullable=False, default=False)
    approver_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    approval_policy = Column(JSONType, nullable=True)

    # Ordering hint only, not a blocking graph
    dependencies = Column(JSONType, nullable=False, default=list)

    # Visibility / external mirror
    external_visible = Column(Boolean, nullable=False, default=False)
    trello_sync = Column(Boolean, nullable=False, default=False)
    trello_card_id = Column(String(100), nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    ngo = relationship("Ngo", back_populates="work_items")
    department = relationship("OrgUnit")
    owner = relationship("Profile", foreign_keys=[owner_user_id])
    approver = relationship("Profile", foreign_keys=[approver_user_id])
    created_by_user = relationship("Profile", foreign_keys=[created_by_user_id])
    documents = relationship(
        "Document",
        back_populates="work_item",
        cascade="all, delete-orphan",
        order_by="Document.uploaded_at",
    )
    reminders = relationship("Reminder", back_populates="work_item", cascade="all, delete-orphan")
    approvals = relationship(
        "WorkItemApproval",
        back_populates="work_item",
        cascade="all, delete-orphan",
        order_by="WorkItemApproval.decided_at",
    )
    history = relationship("WorkItemHistory", back_populates="work_item", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<WorkItem {self.module.value}: {self.title} ({self.status.value})>"


class Document(Base):
    """Evidence artifact uploaded against a Work Item or an NGO."""

    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=False)  # Opaque storage locator
    file_size = Column(Integer, nullable=True)
    file_type = Column(String(100), nullable=True)
    category = Column(_enum_column_type(DocumentCategory), nullable=False, default=DocumentCategory.OTHER)

    # Linkage
    work_item_id = Column(Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=True, index=True)
    ngo_id = Column(Uuid, ForeignKey("ngos.id", ondelete="SET NULL"), nullable=True, index=True)
    uploaded_by_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Review
    review_status = Column(
        _enum_column_type(ReviewStatus),
        nullable=False,
        default=ReviewStatus.PENDING,
        index=True
    )
    reviewer_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)

    work_item = relationship("WorkItem", back_populates="documents")

    def __repr__(self) -> str:
        return f"<Document {self.file_name} ({self.review_status.value})>"


class Reminder(Base):
    """Time-anchored notice tied to a Work Item."""

    __tablename__ = "reminders"

    id = Column(Uuid, primary_key=True, default=uuid4)
    work_item_id = Column(Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    remind_at = Column(DateTime, nullable=False, index=True)
    seen_at = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default="scheduled")
    channel = Column(String(20), nullable=False, default="in_app")

    created_at = Column(DateTime, nullable=False, default=utcnow)

    work_item = relationship("WorkItem", back_populates="reminders")

    def __repr__(self) -> str:
        return f"<Reminder {self.remind_at.isoformat()} ({self.status})>"


class WorkItemApproval(Base):
    """Approval decision recorded against a Work Item."""

    __tablename__ = "work_item_approvals"

    id = Column(Uuid, primary_key=True, default=uuid4)
    work_item_id = Column(Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    decision = Column(_enum_column_type(ReviewDecision), nullable=False)
    notes = Column(Text, nullable=True)
    decided_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    work_item = relationship("WorkItem", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<WorkItemApproval {self.decision.value}>"


class WorkItemHistory(Base):
    """
    Work Item change history for audit trail.

    Records status changes, reassignments, due date shifts, evidence status
    changes and approval decisions.
    """

    __tablename__ = "work_item_history"

    id = Column(Uuid, primary_key=True, default=uuid4)
    work_item_id = Column(
        Uuid,
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Change details
    change_type = Column(String(50), nullable=False)  # created, status_changed, reassigned, ...
    field_name = Column(String(100), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)

    # Audit
    changed_by_user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    change_reason = Column(Text, nullable=True)

    # Relationships
    work_item = relationship("WorkItem", back_populates="history")

    def __repr__(self) -> str:
        return f"<WorkItemHistory {self.change_type}: {self.old_value} -> {self.new_value}>"

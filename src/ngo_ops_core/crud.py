"""CRUD operations for work items and their reference entities.

This module is the store gateway: typed reads and writes, filtered queries,
and reference resolution. Business rules (lifecycle, evidence, bulk) live in
their own modules and call into this one.
"""
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import NotFoundError, ValidationError
from .work_item_state_machine import APPROVAL_GATED_STATUSES

logger = logging.getLogger("ngo-ops.crud")


# Module -> (department_name, sub_department_name) used when a work item is
# created without an explicit department
MODULE_TO_DEPARTMENT: dict[models.ModuleType, tuple[str, Optional[str]]] = {
    models.ModuleType.DEVELOPMENT: ("Development", None),
    models.ModuleType.FINANCE: ("Finance", None),
    models.ModuleType.NGO_COORDINATION: ("Program", None),
    models.ModuleType.OPERATIONS: ("Operations", None),
    models.ModuleType.MARKETING: ("Marketing", None),
    models.ModuleType.COMMUNICATIONS: ("Communications", None),
    models.ModuleType.HR: ("HR", None),
    models.ModuleType.IT: ("IT", None),
    models.ModuleType.LEGAL: ("Legal", None),
    models.ModuleType.PROGRAM: ("Program", None),
    models.ModuleType.CURRICULUM: ("Program", "Curriculum"),
    models.ModuleType.ADMINISTRATION: ("Administration", None),
    models.ModuleType.PARTNERSHIP: ("Partnership Development", None),
}

INITIAL_STATUSES = (models.WorkItemStatus.DRAFT, models.WorkItemStatus.NOT_STARTED)

# Columns an update may not set to null
REQUIRED_FIELDS = frozenset({
    "title", "priority", "evidence_required", "approval_required",
    "dependencies", "external_visible", "trello_sync",
})


# =============================================================================
# Reference entities
# =============================================================================


def get_profile(db: Session, user_id: UUID) -> Optional[models.Profile]:
    """Get a profile by id."""
    return db.query(models.Profile).filter(models.Profile.id == user_id).first()


def create_profile(db: Session, email: str, full_name: Optional[str] = None) -> models.Profile:
    profile = models.Profile(email=email, full_name=full_name)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def get_ngo(db: Session, ngo_id: UUID) -> Optional[models.Ngo]:
    """Get a partner entity by id."""
    return db.query(models.Ngo).filter(models.Ngo.id == ngo_id).first()


def create_ngo(
    db: Session,
    legal_name: str,
    common_name: Optional[str] = None,
    bundle: Optional[str] = None,
    country: Optional[str] = None,
    state_province: Optional[str] = None,
    city: Optional[str] = None,
    status: models.NgoStatus = models.NgoStatus.PROSPECT,
) -> models.Ngo:
    ngo = models.Ngo(
        legal_name=legal_name,
        common_name=common_name,
        bundle=bundle,
        country=country,
        state_province=state_province,
        city=city,
        status=status,
    )
    db.add(ngo)
    db.commit()
    db.refresh(ngo)
    logger.info(f"Created NGO '{ngo.display_name}' (ID: {ngo.id})")
    return ngo


def get_ngos(
    db: Session,
    bundle: Optional[str] = None,
    country: Optional[str] = None,
    state_province: Optional[str] = None,
    status: Optional[models.NgoStatus] = None,
    ngo_ids: Optional[list[UUID]] = None,
) -> list[models.Ngo]:
    """
    Get partner entities matching the given filters, ordered by legal name.

    Args:
        db: Database session
        bundle: Filter by bundle
        country: Filter by country
        state_province: Filter by state/province
        status: Filter by status
        ngo_ids: Restrict to these ids (an empty list matches nothing)

    Returns:
        List of matching NGOs
    """
    query = db.query(models.Ngo)
    if bundle:
        query = query.filter(models.Ngo.bundle == bundle)
    if country:
        query = query.filter(models.Ngo.country == country)
    if state_province:
        query = query.filter(models.Ngo.state_province == state_province)
    if status:
        query = query.filter(models.Ngo.status == status)
    if ngo_ids is not None:
        if not ngo_ids:
            return []
        query = query.filter(models.Ngo.id.in_(ngo_ids))
    return query.order_by(models.Ngo.legal_name.asc()).all()


def get_org_unit(db: Session, org_unit_id: UUID) -> Optional[models.OrgUnit]:
    """Get an org unit by id."""
    return db.query(models.OrgUnit).filter(models.OrgUnit.id == org_unit_id).first()


def create_org_unit(
    db: Session,
    department_name: str,
    sub_department_name: Optional[str] = None,
    lead_user_id: Optional[UUID] = None,
) -> models.OrgUnit:
    unit = models.OrgUnit(
        department_name=department_name,
        sub_department_name=sub_department_name,
        lead_user_id=lead_user_id,
    )
    db.add(unit)
    db.commit()
    db.refresh(unit)
    return unit


def get_department_id_for_module(db: Session, module: models.ModuleType) -> Optional[UUID]:
    """
    Resolve the org unit that owns a module.

    Returns:
        Org unit id, or None if no matching org unit exists
    """
    mapping = MODULE_TO_DEPARTMENT.get(module)
    if not mapping:
        logger.warning(f"No department mapping found for module: {module.value}")
        return None

    department_name, sub_department_name = mapping
    query = db.query(models.OrgUnit).filter(models.OrgUnit.department_name == department_name)
    if sub_department_name:
        query = query.filter(models.OrgUnit.sub_department_name == sub_department_name)
    else:
        query = query.filter(models.OrgUnit.sub_department_name.is_(None))

    unit = query.first()
    if not unit:
        logger.info(f"No org unit '{department_name}' for module {module.value}; leaving department unset")
        return None
    return unit.id


def require_profile(db: Session, user_id: UUID) -> models.Profile:
    """Resolve a user reference or raise NotFoundError."""
    profile = get_profile(db, user_id)
    if not profile:
        raise NotFoundError("User", user_id)
    return profile


def resolve_references(
    db: Session,
    ngo_id: Optional[UUID] = None,
    department_id: Optional[UUID] = None,
    owner_user_id: Optional[UUID] = None,
    approver_user_id: Optional[UUID] = None,
) -> None:
    """
    Verify that every given foreign reference resolves.

    Raises:
        NotFoundError: For the first reference that does not resolve
    """
    if ngo_id and not get_ngo(db, ngo_id):
        raise NotFoundError("NGO", ngo_id)
    if department_id and not get_org_unit(db, department_id):
        raise NotFoundError("Department", department_id)
    if owner_user_id:
        require_profile(db, owner_user_id)
    if approver_user_id:
        require_profile(db, approver_user_id)


# =============================================================================
# Work Items
# =============================================================================


def create_work_item_history(
    db: Session,
    work_item: models.WorkItem,
    change_type: str,
    user_id: Optional[UUID],
    field_name: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    change_reason: Optional[str] = None,
) -> None:
    """Create a history entry for a Work Item change."""
    history = models.WorkItemHistory(
        work_item_id=work_item.id,
        change_type=change_type,
        field_name=field_name,
        old_value=old_value,
        new_value=new_value,
        changed_by_user_id=user_id,
        change_reason=change_reason,
    )
    db.add(history)


def get_work_item(db: Session, work_item_id: UUID) -> Optional[models.WorkItem]:
    """Get a work item by id."""
    return db.query(models.WorkItem).filter(models.WorkItem.id == work_item_id).first()


def require_work_item(db: Session, work_item_id: UUID) -> models.WorkItem:
    """Get a work item by id or raise NotFoundError."""
    work_item = get_work_item(db, work_item_id)
    if not work_item:
        raise NotFoundError("Work Item", work_item_id)
    return work_item


def create_work_item(
    db: Session,
    data: schemas.WorkItemCreate,
    user_id: Optional[UUID] = None,
) -> models.WorkItem:
    """
    Create a new work item.

    Args:
        db: Database session
        data: Work item creation data
        user_id: UUID of the user creating the work item

    Returns:
        Created WorkItem

    Raises:
        ValidationError: If the initial status is not draft or not_started
        NotFoundError: If a referenced NGO, department or user does not exist
    """
    if data.status not in INITIAL_STATUSES:
        raise ValidationError(
            f"Work items must start as draft or not_started, not {data.status.value}",
            field="status",
        )

    resolve_references(
        db,
        ngo_id=data.ngo_id,
        department_id=data.department_id,
        owner_user_id=data.owner_user_id,
        approver_user_id=data.approver_user_id,
    )

    department_id = data.department_id or get_department_id_for_module(db, data.module)

    work_item = models.WorkItem(
        module=data.module,
        type=data.type,
        title=data.title,
        description=data.description,
        status=data.status,
        priority=data.priority,
        ngo_id=data.ngo_id,
        department_id=department_id,
        owner_user_id=data.owner_user_id,
        created_by_user_id=user_id,
        due_date=data.due_date,
        start_date=data.start_date,
        evidence_required=data.evidence_required,
        evidence_status=models.EvidenceStatus.MISSING if data.evidence_required else None,
        approval_required=data.approval_required,
        approver_user_id=data.approver_user_id,
        approval_policy=data.approval_policy,
        dependencies=[str(dep) for dep in data.dependencies],
        external_visible=data.external_visible,
        trello_sync=data.trello_sync,
        trello_card_id=data.trello_card_id,
    )
    db.add(work_item)
    db.flush()  # Get the ID for history

    create_work_item_history(db, work_item, "created", user_id, new_value=work_item.title)

    db.commit()
    db.refresh(work_item)
    logger.info(f"Created work item {work_item.id}: {work_item.title}")
    return work_item


def update_work_item(
    db: Session,
    work_item: models.WorkItem,
    data: schemas.WorkItemUpdate,
    user_id: Optional[UUID] = None,
) -> models.WorkItem:
    """
    Update the editable fields of a work item.

    Status is not touched here; it only changes through the lifecycle.
    A gate cannot be switched on for an item already past it unless the
    item would satisfy that gate.

    Raises:
        NotFoundError: If a new NGO, department or user reference does not exist
        ValidationError: If enabling evidence or approval would leave a
            complete or approved item without what its status implies
    """
    updates = data.model_dump(exclude_unset=True)

    resolve_references(
        db,
        ngo_id=updates.get("ngo_id"),
        department_id=updates.get("department_id"),
        owner_user_id=updates.get("owner_user_id"),
        approver_user_id=updates.get("approver_user_id"),
    )

    if (
        updates.get("evidence_required")
        and not work_item.evidence_required
        and work_item.status == models.WorkItemStatus.COMPLETE
        and work_item.evidence_status != models.EvidenceStatus.APPROVED
    ):
        raise ValidationError(
            f"Work item {work_item.id} is complete without approved evidence; evidence cannot be required now",
            field="evidence_required",
        )
    if (
        updates.get("approval_required")
        and not work_item.approval_required
        and work_item.status in APPROVAL_GATED_STATUSES
    ):
        latest = get_latest_approval(db, work_item.id)
        if latest is None or latest.decision != models.ReviewDecision.APPROVED:
            raise ValidationError(
                f"Work item {work_item.id} is {work_item.status.value} without an approval decision; "
                f"approval cannot be required now",
                field="approval_required",
            )

    if "owner_user_id" in updates and updates["owner_user_id"] != work_item.owner_user_id:
        create_work_item_history(
            db, work_item, "reassigned", user_id,
            field_name="owner_user_id",
            old_value=str(work_item.owner_user_id) if work_item.owner_user_id else None,
            new_value=str(updates["owner_user_id"]) if updates["owner_user_id"] else None,
        )
    if "due_date" in updates and updates["due_date"] != work_item.due_date:
        create_work_item_history(
            db, work_item, "due_date_changed", user_id,
            field_name="due_date",
            old_value=work_item.due_date.isoformat() if work_item.due_date else None,
            new_value=updates["due_date"].isoformat() if updates["due_date"] else None,
        )

    if "dependencies" in updates and updates["dependencies"] is not None:
        updates["dependencies"] = [str(dep) for dep in updates["dependencies"]]

    for field, value in updates.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(work_item, field, value)

    # Null only while the item has no documents
    if updates.get("evidence_required") and work_item.evidence_status is None:
        work_item.evidence_status = models.EvidenceStatus.MISSING

    db.commit()
    db.refresh(work_item)
    logger.info(f"Updated work item {work_item.id}")
    return work_item


def delete_work_item(db: Session, work_item: models.WorkItem) -> None:
    """Delete a work item together with its documents, reminders, approvals and history."""
    work_item_id = work_item.id
    db.delete(work_item)
    db.commit()
    logger.info(f"Deleted work item {work_item_id}")


def get_work_items(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    ngo_id: Optional[UUID] = None,
    statuses: Optional[list[models.WorkItemStatus]] = None,
    module: Optional[models.ModuleType] = None,
    department_ids: Optional[list[UUID]] = None,
    owner_user_id: Optional[UUID] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
) -> tuple[list[models.WorkItem], int]:
    """
    Get work items with filtering and pagination.

    Args:
        db: Database session
        skip: Number of items to skip
        limit: Maximum number of items to return
        ngo_id: Filter by NGO
        statuses: Filter by any of these statuses
        module: Filter by module
        department_ids: Filter by any of these departments (an empty list matches nothing)
        owner_user_id: Filter by owner
        due_from: Only items due on or after this date
        due_to: Only items due on or before this date

    Returns:
        Tuple of (work_items, total_count)
    """
    query = db.query(models.WorkItem)

    if ngo_id:
        query = query.filter(models.WorkItem.ngo_id == ngo_id)
    if statuses:
        query = query.filter(models.WorkItem.status.in_(statuses))
    if module:
        query = query.filter(models.WorkItem.module == module)
    if department_ids is not None:
        if not department_ids:
            return [], 0
        query = query.filter(models.WorkItem.department_id.in_(department_ids))
    if owner_user_id:
        query = query.filter(models.WorkItem.owner_user_id == owner_user_id)
    if due_from:
        query = query.filter(models.WorkItem.due_date >= due_from)
    if due_to:
        query = query.filter(models.WorkItem.due_date <= due_to)

    total = query.count()

    query = query.order_by(
        models.WorkItem.due_date.asc().nulls_last(),
        models.WorkItem.created_at.desc(),
    )
    return query.offset(skip).limit(limit).all(), total


def get_work_item_history(
    db: Session,
    work_item_id: UUID,
    limit: int = 50,
) -> list[models.WorkItemHistory]:
    """Get history for a work item, newest first."""
    return db.query(models.WorkItemHistory).filter(
        models.WorkItemHistory.work_item_id == work_item_id
    ).order_by(
        models.WorkItemHistory.changed_at.desc()
    ).limit(limit).all()


def get_latest_approval(db: Session, work_item_id: UUID) -> Optional[models.WorkItemApproval]:
    """Get the most recent approval decision recorded for a work item."""
    return db.query(models.WorkItemApproval).filter(
        models.WorkItemApproval.work_item_id == work_item_id
    ).order_by(
        models.WorkItemApproval.decided_at.desc()
    ).first()


# =============================================================================
# Documents
# =============================================================================


def get_document(db: Session, document_id: UUID) -> Optional[models.Document]:
    """Get a document by id."""
    return db.query(models.Document).filter(models.Document.id == document_id).first()


def require_document(db: Session, document_id: UUID) -> models.Document:
    """Get a document by id or raise NotFoundError."""
    document = get_document(db, document_id)
    if not document:
        raise NotFoundError("Document", document_id)
    return document


def get_documents(
    db: Session,
    work_item_id: Optional[UUID] = None,
    ngo_id: Optional[UUID] = None,
    category: Optional[models.DocumentCategory] = None,
    review_status: Optional[models.ReviewStatus] = None,
) -> list[models.Document]:
    """List documents matching the filters, newest upload first."""
    query = db.query(models.Document)
    if work_item_id:
        query = query.filter(models.Document.work_item_id == work_item_id)
    if ngo_id:
        query = query.filter(models.Document.ngo_id == ngo_id)
    if category:
        query = query.filter(models.Document.category == category)
    if review_status:
        query = query.filter(models.Document.review_status == review_status)
    return query.order_by(models.Document.uploaded_at.desc()).all()


def count_pending_documents(
    db: Session,
    work_item_ids: Optional[list[UUID]] = None,
    ngo_ids: Optional[list[UUID]] = None,
) -> int:
    """
    Count documents awaiting review.

    ``work_item_ids`` takes precedence over ``ngo_ids``; an empty id list
    counts nothing.
    """
    query = db.query(models.Document).filter(models.Document.review_status == models.ReviewStatus.PENDING)
    if work_item_ids is not None:
        if not work_item_ids:
            return 0
        query = query.filter(models.Document.work_item_id.in_(work_item_ids))
    elif ngo_ids is not None:
        if not ngo_ids:
            return 0
        query = query.filter(or_(
            models.Document.ngo_id.in_(ngo_ids),
            models.Document.work_item.has(models.WorkItem.ngo_id.in_(ngo_ids)),
        ))
    return query.count()


# =============================================================================
# Reminders
# =============================================================================


def get_reminder(db: Session, reminder_id: UUID) -> Optional[models.Reminder]:
    """Get a reminder by id."""
    return db.query(models.Reminder).filter(models.Reminder.id == reminder_id).first()

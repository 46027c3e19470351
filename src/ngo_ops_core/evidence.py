"""Evidence documents and the evidence status they derive for a Work Item.

Aggregation rule across the documents of one work item:

    no documents                    -> missing
    any document still pending      -> under_review if some document already
                                       carries a decision, else uploaded
    every document decided          -> the most recent decision wins
                                       (approved or rejected)

Approving evidence never moves the work item itself; the caller still has to
request the ``complete`` transition through the lifecycle.
"""
import logging
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .errors import NotFoundError, PreconditionFailedError, ValidationError

logger = logging.getLogger("ngo-ops.evidence")


def derive_evidence_status(documents: Sequence[models.Document]) -> models.EvidenceStatus:
    """Compute the aggregate evidence status for a set of documents."""
    if not documents:
        return models.EvidenceStatus.MISSING

    decided = [d for d in documents if d.review_status != models.ReviewStatus.PENDING]
    if len(decided) < len(documents):
        return models.EvidenceStatus.UNDER_REVIEW if decided else models.EvidenceStatus.UPLOADED

    latest = max(decided, key=lambda d: (d.reviewed_at or d.uploaded_at, d.uploaded_at))
    if latest.review_status == models.ReviewStatus.APPROVED:
        return models.EvidenceStatus.APPROVED
    return models.EvidenceStatus.REJECTED


def recompute_evidence_status(
    db: Session,
    work_item: models.WorkItem,
    user_id: Optional[UUID] = None,
) -> Optional[models.EvidenceStatus]:
    """
    Re-derive and store a work item's evidence status from its documents.

    Items that do not require evidence and have no documents keep a null
    status. Does not commit.

    Returns:
        The new evidence status

    Raises:
        PreconditionFailedError: If a complete item that requires evidence
            would lose its approved status; pending changes are rolled back
    """
    db.flush()
    documents = db.query(models.Document).filter(
        models.Document.work_item_id == work_item.id
    ).all()

    if documents or work_item.evidence_required:
        new_status = derive_evidence_status(documents)
    else:
        new_status = None

    if (
        work_item.status == models.WorkItemStatus.COMPLETE
        and work_item.evidence_required
        and new_status != models.EvidenceStatus.APPROVED
    ):
        work_item_id = work_item.id
        db.rollback()
        logger.warning(f"Evidence change refused on complete work item {work_item_id}")
        raise PreconditionFailedError(
            f"Work item {work_item_id} is complete; its evidence must stay approved.",
            gate="evidence",
        )

    old_status = work_item.evidence_status
    if new_status != old_status:
        work_item.evidence_status = new_status
        crud.create_work_item_history(
            db, work_item, "evidence_status_changed", user_id,
            field_name="evidence_status",
            old_value=old_status.value if old_status else None,
            new_value=new_status.value if new_status else None,
        )
        logger.info(
            f"Evidence status of work item {work_item.id}: "
            f"{old_status.value if old_status else None} -> {new_status.value if new_status else None}"
        )
    return new_status


def record_review(
    db: Session,
    document: models.Document,
    decision: models.ReviewDecision,
    reviewer_id: UUID,
    notes: Optional[str] = None,
) -> models.Document:
    """
    Record a reviewer's decision on a document and refresh its work item.

    Args:
        db: Database session
        document: Document under review
        decision: approved or rejected
        reviewer_id: Reviewing user
        notes: Optional review notes

    Returns:
        The reviewed document

    Raises:
        ValidationError: If the document is not linked to a work item
        NotFoundError: If the reviewer or the linked work item does not resolve
    """
    if document.work_item_id is None:
        raise ValidationError(
            f"Document {document.id} is not linked to a work item and cannot be reviewed as evidence",
            field="work_item_id",
        )
    crud.require_profile(db, reviewer_id)
    work_item = crud.require_work_item(db, document.work_item_id)

    document.review_status = models.ReviewStatus(decision.value)
    document.reviewer_user_id = reviewer_id
    document.reviewed_at = models.utcnow()
    document.review_notes = notes

    recompute_evidence_status(db, work_item, reviewer_id)

    db.commit()
    db.refresh(document)

    logger.info(f"Document {document.id} reviewed as {decision.value} by {reviewer_id}")
    return document


def attach_document(
    db: Session,
    data: schemas.DocumentCreate,
    uploader_id: Optional[UUID] = None,
) -> models.Document:
    """
    Register an uploaded document, pending review.

    A document linked to a work item inherits the item's NGO when none is
    given, and the item's evidence status is recomputed.

    Raises:
        NotFoundError: If the work item or NGO does not resolve
    """
    work_item = crud.require_work_item(db, data.work_item_id) if data.work_item_id else None
    if data.ngo_id and not crud.get_ngo(db, data.ngo_id):
        raise NotFoundError("NGO", data.ngo_id)

    ngo_id = data.ngo_id or (work_item.ngo_id if work_item else None)

    document = models.Document(
        file_name=data.file_name,
        file_path=data.file_path,
        file_size=data.file_size,
        file_type=data.file_type,
        category=data.category,
        work_item_id=data.work_item_id,
        ngo_id=ngo_id,
        uploaded_by_user_id=uploader_id,
        review_status=models.ReviewStatus.PENDING,
    )
    db.add(document)

    if work_item:
        recompute_evidence_status(db, work_item, uploader_id)

    db.commit()
    db.refresh(document)

    logger.info(f"Attached document {document.id} ({document.file_name}) to work item {document.work_item_id}")
    return document


def delete_document(db: Session, document: models.Document, user_id: Optional[UUID] = None) -> None:
    """Remove a document; its work item's evidence status is recomputed."""
    document_id = document.id
    work_item = crud.get_work_item(db, document.work_item_id) if document.work_item_id else None

    db.delete(document)
    if work_item:
        recompute_evidence_status(db, work_item, user_id)

    db.commit()
    logger.info(f"Deleted document {document_id}")


def list_review_queue(
    db: Session,
    category: Optional[models.DocumentCategory] = None,
    limit: int = 100,
) -> list[models.Document]:
    """Pending documents, oldest upload first."""
    query = db.query(models.Document).filter(models.Document.review_status == models.ReviewStatus.PENDING)
    if category:
        query = query.filter(models.Document.category == category)
    return query.order_by(models.Document.uploaded_at.asc()).limit(limit).all()

"""Documents API router: evidence upload registration and review."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ... import crud, evidence
from ...database import get_db
from ...errors import OpsCoreError
from ...models import DocumentCategory, Profile, ReviewStatus
from ...schemas import DocumentCreate, DocumentResponse, DocumentReview
from ..dependencies import get_current_user, to_http_exception

router = APIRouter(tags=["documents"])


@router.post("/", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def attach_document(
    data: DocumentCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Register an uploaded document. The file itself is already in blob storage."""
    try:
        return evidence.attach_document(db, data, current_user.id)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.get("/", response_model=list[DocumentResponse])
async def list_documents(
    work_item_id: Optional[UUID] = None,
    ngo_id: Optional[UUID] = None,
    category: Optional[DocumentCategory] = None,
    review_status: Optional[ReviewStatus] = None,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """List documents for a work item or NGO, newest first."""
    return crud.get_documents(db, work_item_id, ngo_id, category, review_status)


@router.get("/review-queue", response_model=list[DocumentResponse])
async def list_review_queue(
    category: Optional[DocumentCategory] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Documents awaiting review, oldest first."""
    return evidence.list_review_queue(db, category, limit)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    try:
        return crud.require_document(db, document_id)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.post("/{document_id}/review", response_model=DocumentResponse)
async def review_document(
    document_id: UUID,
    data: DocumentReview,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Approve or reject a document; the work item's evidence status follows."""
    try:
        document = crud.require_document(db, document_id)
        return evidence.record_review(db, document, data.decision, current_user.id, data.notes)
    except OpsCoreError as e:
        raise to_http_exception(e)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    """Remove a document record; the blob is the storage collaborator's concern."""
    try:
        document = crud.require_document(db, document_id)
    except OpsCoreError as e:
        raise to_http_exception(e)
    evidence.delete_document(db, document, current_user.id)

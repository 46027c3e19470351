"""Shared FastAPI dependencies: acting user resolution and error mapping."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, models
from ..database import get_db
from ..errors import (
    NotFoundError,
    OpsCoreError,
    PartialBulkFailure,
    PreconditionFailedError,
    ValidationError,
)
from ..work_item_state_machine import InvalidTransitionError

logger = logging.getLogger("ngo-ops.api")

ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_400_BAD_REQUEST,
    PreconditionFailedError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PartialBulkFailure: status.HTTP_207_MULTI_STATUS,
}


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> models.Profile:
    """Resolve the acting user from the ``X-User-Id`` header.

    Identity is established upstream; this only checks the id is a known profile.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid user id: {x_user_id}")

    user = crud.get_profile(db, user_id)
    if not user:
        logger.warning(f"Request with unknown user id {user_id}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown user: {user_id}")
    return user


def to_http_exception(error: OpsCoreError) -> HTTPException:
    """Translate a domain error into an HTTPException with a structured detail."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_cls, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_cls):
            status_code = code
            break

    detail: dict = {"code": error.code, "message": error.message}
    if isinstance(error, InvalidTransitionError):
        detail["allowed_transitions"] = [s.value for s in error.allowed_transitions if s != error.current_status]
    elif isinstance(error, PreconditionFailedError):
        detail["gate"] = error.gate
    elif isinstance(error, ValidationError) and error.field:
        detail["field"] = error.field
    return HTTPException(status_code=status_code, detail=detail)

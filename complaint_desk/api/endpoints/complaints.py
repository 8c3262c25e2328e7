"""
Complaint endpoints.

- POST requires the ``user`` role.
- GET is open to users (own complaints only) and admins (all, filterable).
- PATCH / DELETE require the ``admin`` role.

Bodies are read inside the handlers, after the role guard has run, so a
caller without the right role is refused whatever it sends.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from complaint_desk.api.deps import (
    get_db,
    get_notifier,
    require_admin,
    require_any_role,
    require_user,
)
from complaint_desk.core.exceptions import ComplaintNotFound, FieldValidationError
from complaint_desk.models.complaint import Complaint
from complaint_desk.models.user import User
from complaint_desk.schemas.complaint import (
    ComplaintListResponse,
    ComplaintRead,
    ComplaintResponse,
)
from complaint_desk.schemas.user import MessageResponse
from complaint_desk.services import complaint_service
from complaint_desk.services.notifications import Notifier

router = APIRouter(prefix="/complaints", tags=["complaints"])
logger = logging.getLogger(__name__)


def _envelope(complaint: Complaint) -> ComplaintResponse:
    return ComplaintResponse(complaint=ComplaintRead.model_validate(complaint))


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise FieldValidationError({"body": ["Request body must be valid JSON."]}) from None
    if not isinstance(body, dict):
        raise FieldValidationError({"body": ["Request body must be a JSON object."]})
    return body


@router.post("", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
async def create_complaint(
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(require_user),
) -> ComplaintResponse:
    """Submit a complaint. Field errors come back as ``{message, errors}`` (400)."""
    body = await _json_object(request)
    complaint = await complaint_service.submit_complaint(db, notifier, current_user.id, body)
    return _envelope(complaint)


@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    status_filter: Optional[str] = Query(default="all", alias="status"),
    priority_filter: Optional[str] = Query(default="all", alias="priority"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_any_role),
) -> ComplaintListResponse:
    """List complaints, newest first. Filters only apply to admins."""
    complaints = await complaint_service.list_complaints(
        db,
        current_user.role,
        current_user.id,
        status_filter=status_filter,
        priority_filter=priority_filter,
    )
    return ComplaintListResponse(
        complaints=[ComplaintRead.model_validate(c) for c in complaints]
    )


@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_any_role),
) -> ComplaintResponse:
    complaint = await complaint_service.get_complaint(db, complaint_id)
    if not current_user.is_admin and complaint.user_id != current_user.id:
        # Other users' complaints are indistinguishable from missing ones
        raise ComplaintNotFound()
    return _envelope(complaint)


@router.patch("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint_status(
    complaint_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    admin: User = Depends(require_admin),
) -> ComplaintResponse:
    """Overwrite a complaint's status (any state to any state)."""
    update = complaint_service.validate_status_update(await _json_object(request))
    complaint = await complaint_service.update_complaint_status(
        db, notifier, complaint_id, update.status
    )
    logger.info("Admin %s set complaint %s to %s", admin.id, complaint_id, update.status)
    return _envelope(complaint)


@router.delete("/{complaint_id}", response_model=MessageResponse)
async def delete_complaint(
    complaint_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> MessageResponse:
    """Permanently delete a complaint (admin only, no notification)."""
    await complaint_service.delete_complaint(db, complaint_id)
    logger.info("Admin %s deleted complaint %s", admin.id, complaint_id)
    return MessageResponse(message="Complaint deleted successfully.")

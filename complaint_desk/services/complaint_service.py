"""
Complaint lifecycle: submit, list, status update, delete.

Mutations commit first and notify afterwards; notification results are
logged by the notifier and never change the outcome of the operation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from complaint_desk.core.exceptions import (
    AuthError,
    ComplaintNotFound,
    ComplaintValidationError,
    flatten_validation_errors,
)
from complaint_desk.models.complaint import Complaint, ComplaintStatus
from complaint_desk.models.user import User, UserRole
from complaint_desk.schemas.complaint import ComplaintCreate, ComplaintStatusUpdate
from complaint_desk.services.notifications import (
    Notifier,
    complaint_submitted_admin_email,
    complaint_submitted_author_email,
    status_changed_admin_email,
    status_changed_author_email,
)

logger = logging.getLogger(__name__)

ALL = "all"

# Status changes the author hears about; a reset to Pending is silent.
AUTHOR_NOTIFIED_STATUSES = frozenset(
    {ComplaintStatus.IN_PROGRESS.value, ComplaintStatus.RESOLVED.value}
)


async def notification_admin(db: AsyncSession) -> User | None:
    """The admin who receives lifecycle emails: the first by id."""
    result = await db.execute(
        select(User).where(User.role == UserRole.ADMIN.value).order_by(User.id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_complaint(db: AsyncSession, complaint_id: int) -> Complaint:
    result = await db.execute(
        select(Complaint)
        .options(selectinload(Complaint.author))
        .where(Complaint.id == complaint_id)
        .execution_options(populate_existing=True)
    )
    complaint = result.scalar_one_or_none()
    if complaint is None:
        raise ComplaintNotFound()
    return complaint


def validate_complaint(fields: Mapping[str, Any]) -> ComplaintCreate:
    try:
        return ComplaintCreate.model_validate(dict(fields))
    except ValidationError as exc:
        raise ComplaintValidationError(flatten_validation_errors(list(exc.errors()))) from None


def validate_status_update(fields: Mapping[str, Any]) -> ComplaintStatusUpdate:
    try:
        return ComplaintStatusUpdate.model_validate(dict(fields))
    except ValidationError as exc:
        raise ComplaintValidationError(flatten_validation_errors(list(exc.errors()))) from None


async def submit_complaint(
    db: AsyncSession,
    notifier: Notifier,
    author_id: int,
    fields: Mapping[str, Any],
) -> Complaint:
    data = validate_complaint(fields)

    complaint = Complaint(
        title=data.title,
        description=data.description,
        category=data.category,
        priority=data.priority,
        status=ComplaintStatus.PENDING.value,
        user_id=author_id,
    )
    db.add(complaint)
    await db.commit()
    complaint = await get_complaint(db, complaint.id)
    logger.info("Complaint %s submitted by user %s", complaint.id, author_id)

    author = complaint.author
    username = author.username if author else "a user"
    if author is not None:
        await notifier.send(author.email, complaint_submitted_author_email(author.username, complaint))
    admin = await notification_admin(db)
    if admin is not None:
        await notifier.send(admin.email, complaint_submitted_admin_email(username, complaint))
    return complaint


async def list_complaints(
    db: AsyncSession,
    role: str,
    requester_id: int,
    status_filter: str | None = None,
    priority_filter: str | None = None,
) -> list[Complaint]:
    stmt = select(Complaint).options(selectinload(Complaint.author))

    if role == UserRole.USER.value:
        stmt = stmt.where(Complaint.user_id == requester_id)
    elif role == UserRole.ADMIN.value:
        if status_filter and status_filter != ALL:
            stmt = stmt.where(Complaint.status == status_filter)
        if priority_filter and priority_filter != ALL:
            stmt = stmt.where(Complaint.priority == priority_filter)
    else:
        raise AuthError("Unauthorized access.", 403)

    stmt = stmt.order_by(Complaint.created_at.desc(), Complaint.id.desc())
    result = await db.execute(stmt)
    complaints = list(result.scalars().all())
    logger.debug(
        "Listed %d complaints for %s %s (status=%s, priority=%s)",
        len(complaints),
        role,
        requester_id,
        status_filter,
        priority_filter,
    )
    return complaints


async def update_complaint_status(
    db: AsyncSession,
    notifier: Notifier,
    complaint_id: int,
    new_status: str,
) -> Complaint:
    new_status = validate_status_update({"status": new_status}).status

    result = await db.execute(
        update(Complaint).where(Complaint.id == complaint_id).values(status=new_status)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ComplaintNotFound()
    await db.commit()

    complaint = await get_complaint(db, complaint_id)
    logger.info("Complaint %s status set to %s", complaint_id, new_status)

    admin = await notification_admin(db)
    if admin is not None:
        await notifier.send(admin.email, status_changed_admin_email(complaint))
    if new_status in AUTHOR_NOTIFIED_STATUSES and complaint.author is not None:
        await notifier.send(
            complaint.author.email,
            status_changed_author_email(complaint.author.username, complaint),
        )
    return complaint


async def delete_complaint(db: AsyncSession, complaint_id: int) -> None:
    result = await db.execute(delete(Complaint).where(Complaint.id == complaint_id))
    if result.rowcount == 0:
        await db.rollback()
        raise ComplaintNotFound()
    await db.commit()
    logger.info("Complaint %s deleted", complaint_id)

"""
Complaint model: the submitted issue and its status lifecycle.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from complaint_desk.db.base import Base


class ComplaintCategory(str, enum.Enum):
    PRODUCT = "Product"
    SERVICE = "Service"
    SUPPORT = "Support"


class ComplaintPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ComplaintStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


CATEGORY_VALUES = tuple(c.value for c in ComplaintCategory)
PRIORITY_VALUES = tuple(p.value for p in ComplaintPriority)
STATUS_VALUES = tuple(s.value for s in ComplaintStatus)


class Complaint(Base):
    __tablename__ = "complaints"
    __table_args__ = (Index("ix_complaints_status_priority", "status", "priority"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    description: str = Column(Text, nullable=False)  # type: ignore[assignment]
    category: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    priority: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=ComplaintStatus.PENDING.value,
        server_default=ComplaintStatus.PENDING.value,
    )  # Pending | In Progress | Resolved
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    author = relationship("User", lazy="raise")

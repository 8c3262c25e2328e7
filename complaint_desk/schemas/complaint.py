"""Pydantic schemas for complaint submission, status updates and reads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from complaint_desk.models.complaint import CATEGORY_VALUES, PRIORITY_VALUES, STATUS_VALUES
from complaint_desk.schemas.user import UserSummary


class ComplaintCreate(BaseModel):
    title: str
    description: str
    category: str
    priority: str

    @field_validator("title")
    @classmethod
    def _validate_title(cls, v: str) -> str:
        if len(v) < 5:
            raise ValueError("Title must be at least 5 characters long.")
        return v

    @field_validator("description")
    @classmethod
    def _validate_description(cls, v: str) -> str:
        if len(v) < 20:
            raise ValueError("Description must be at least 20 characters long.")
        return v

    @field_validator("category")
    @classmethod
    def _validate_category(cls, v: str) -> str:
        if v not in CATEGORY_VALUES:
            raise ValueError("Invalid category selected.")
        return v

    @field_validator("priority")
    @classmethod
    def _validate_priority(cls, v: str) -> str:
        if v not in PRIORITY_VALUES:
            raise ValueError("Invalid priority selected.")
        return v


class ComplaintStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _validate_status(cls, v: str) -> str:
        if v not in STATUS_VALUES:
            raise ValueError(f"Status must be one of: {', '.join(STATUS_VALUES)}")
        return v


class ComplaintRead(BaseModel):
    id: int
    title: str
    description: str
    category: str
    priority: str
    status: str
    user_id: int
    author: UserSummary | None = None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ComplaintResponse(BaseModel):
    success: bool = True
    complaint: ComplaintRead


class ComplaintListResponse(BaseModel):
    success: bool = True
    complaints: list[ComplaintRead]

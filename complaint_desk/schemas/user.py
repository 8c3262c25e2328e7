"""Pydantic schemas for signup, login, verification and user reads."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, field_validator

from complaint_desk.models.user import UserRole

_VALID_ROLES = {r.value for r in UserRole}
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalise_email(v: str) -> str:
    v = v.strip().lower()
    if not _EMAIL_RE.match(v):
        raise ValueError("Invalid email address.")
    return v


class SignupRequest(BaseModel):
    username: str
    email: str
    password: str
    role: str = UserRole.USER.value

    @field_validator("username")
    @classmethod
    def _validate_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters long.")
        return v

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters long.")
        return v

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        if v not in _VALID_ROLES:
            raise ValueError("Invalid role selected.")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required.")
        return v


class VerifyEmailRequest(BaseModel):
    email: str
    otp: str

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("otp")
    @classmethod
    def _validate_otp(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 6:
            raise ValueError("OTP must be 6 digits.")
        if not v.isdigit():
            raise ValueError("OTP must be digits only.")
        return v


class ResendCodeRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _normalise_email(v)


class UserRead(BaseModel):
    id: int
    username: str
    email: str
    role: str
    is_verified: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class UserSummary(BaseModel):
    id: int
    username: str
    email: str

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    success: bool
    message: str
    user: UserRead | None = None
    redirect_path: str | None = None
    verification_required: bool = False


class MessageResponse(BaseModel):
    success: bool = True
    message: str

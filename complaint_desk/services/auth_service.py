"""
Account lifecycle: signup, login, email verification.

A session token is only ever issued to a verified account.  Signup and
logins against unverified accounts (re)send a six-digit code instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from complaint_desk.core.config import settings
from complaint_desk.core.exceptions import (
    CodeExpired,
    DuplicateAccount,
    InvalidCode,
    InvalidCredentials,
    UserNotFound,
)
from complaint_desk.core.security import (
    Identity,
    TokenService,
    generate_otp,
    get_password_hash,
    verify_password,
)
from complaint_desk.models.user import User
from complaint_desk.schemas.user import SignupRequest
from complaint_desk.services.notifications import Notifier, verification_code_email

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    user: User
    token: str | None = None

    @property
    def verification_required(self) -> bool:
        return self.token is None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def _issue_code(db: AsyncSession, notifier: Notifier, user: User) -> str:
    """Store a fresh code on *user* (overwriting any previous one) and email it."""
    code = generate_otp()
    user.verification_otp = code
    user.otp_expires = datetime.now(timezone.utc) + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
    await db.commit()
    await notifier.send(user.email, verification_code_email(code, settings.OTP_EXPIRE_MINUTES))
    return code


async def signup(db: AsyncSession, notifier: Notifier, body: SignupRequest) -> User:
    existing = await db.execute(
        select(User).where(or_(User.email == body.email, User.username == body.username))
    )
    if existing.scalars().first() is not None:
        raise DuplicateAccount()

    user = User(
        username=body.username,
        email=body.email,
        hashed_password=get_password_hash(body.password),
        role=body.role,
        is_verified=False,
    )
    db.add(user)
    await db.flush()
    await _issue_code(db, notifier, user)
    await db.refresh(user)
    logger.info("Signed up %s (%s); awaiting email verification", user.username, user.role)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """Return the user for *email* / *password* or raise :class:`InvalidCredentials`."""
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        raise InvalidCredentials()
    return user


async def login(
    db: AsyncSession,
    notifier: Notifier,
    tokens: TokenService,
    email: str,
    password: str,
) -> LoginResult:
    user = await authenticate(db, email, password)
    if not user.is_verified:
        await _issue_code(db, notifier, user)
        logger.info("Login by unverified user %s; verification code resent", user.id)
        return LoginResult(user=user)
    return LoginResult(user=user, token=tokens.issue(Identity(id=str(user.id), role=user.role)))


async def verify_email(
    db: AsyncSession,
    tokens: TokenService,
    email: str,
    code: str,
    now: datetime | None = None,
) -> LoginResult:
    user = await get_user_by_email(db, email)
    if user is None:
        raise UserNotFound()
    if user.verification_otp is None or user.verification_otp != code:
        raise InvalidCode()
    now = now or datetime.now(timezone.utc)
    if user.otp_expires is None or _as_utc(user.otp_expires) <= now:
        raise CodeExpired()

    user.is_verified = True
    user.verification_otp = None
    user.otp_expires = None
    await db.commit()
    logger.info("User %s verified their email", user.id)
    return LoginResult(user=user, token=tokens.issue(Identity(id=str(user.id), role=user.role)))


async def resend_code(db: AsyncSession, notifier: Notifier, email: str) -> None:
    """Send a new code to an unverified account; silent for anything else."""
    user = await get_user_by_email(db, email)
    if user is None or user.is_verified:
        return
    await _issue_code(db, notifier, user)

"""
One authorization policy for both the JSON API and the server-rendered pages.

:func:`authorize` never raises; it returns an :class:`AccessDecision` and each
surface translates the outcome (status code for the API, redirect for pages).
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Collection
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complaint_desk.core.exceptions import InvalidToken
from complaint_desk.core.security import TokenService
from complaint_desk.models.user import User

logger = logging.getLogger(__name__)


class AccessOutcome(str, enum.Enum):
    ALLOWED = "allowed"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    user: User | None = None
    reason: str = ""
    token_rejected: bool = False

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOWED


async def resolve_user(db: AsyncSession, tokens: TokenService, token: str) -> User | None:
    """Decode *token* and load its user; ``None`` if the user no longer exists."""
    identity = tokens.verify(token)
    try:
        user_id = int(identity.id)
    except ValueError:
        raise InvalidToken("Malformed subject") from None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def authorize(
    db: AsyncSession,
    tokens: TokenService,
    token: str | None,
    allowed_roles: Collection[str],
) -> AccessDecision:
    if not token:
        return AccessDecision(AccessOutcome.UNAUTHENTICATED, reason="Authentication required.")

    try:
        user = await resolve_user(db, tokens, token)
    except InvalidToken:
        return AccessDecision(
            AccessOutcome.UNAUTHENTICATED,
            reason="Invalid or expired token.",
            token_rejected=True,
        )
    if user is None:
        logger.warning("Session token refers to a missing user")
        return AccessDecision(
            AccessOutcome.UNAUTHENTICATED,
            reason="Invalid or expired token.",
            token_rejected=True,
        )

    if user.role not in allowed_roles:
        logger.info(
            "Access denied for user %s (role %s); allowed: %s",
            user.id,
            user.role,
            ", ".join(allowed_roles),
        )
        return AccessDecision(
            AccessOutcome.FORBIDDEN,
            user=user,
            reason="Unauthorized access or unverified account.",
        )
    if not user.is_verified:
        return AccessDecision(
            AccessOutcome.UNVERIFIED,
            user=user,
            reason="Unauthorized access or unverified account.",
        )
    return AccessDecision(AccessOutcome.ALLOWED, user=user)

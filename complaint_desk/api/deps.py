"""
FastAPI dependencies: database session, collaborators and auth guards.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Optional

from fastapi import Depends, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import cookie_parser

from complaint_desk.core.config import settings
from complaint_desk.core.exceptions import AuthError
from complaint_desk.core.security import TokenService, token_service
from complaint_desk.db.session import async_session_factory
from complaint_desk.models.user import User, UserRole
from complaint_desk.services.access_control import AccessOutcome, authorize
from complaint_desk.services.notifications import get_notifier  # noqa: F401  re-exported for routers

# auto_error=False so a missing header falls through to the cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_token_service() -> TokenService:
    return token_service


# ── Session resolution ──────────────────────────────────────────────
def token_from_cookie_header(cookie_header: str | None) -> str | None:
    """Pull the session token out of a raw ``Cookie`` header."""
    if not cookie_header:
        return None
    return cookie_parser(cookie_header).get(settings.AUTH_COOKIE_NAME) or None


# ── Auth dependencies ───────────────────────────────────────────────
def require_roles(*roles: str) -> Callable[..., Awaitable[User]]:
    """Build a guard that admits verified users whose role is in *roles*."""

    async def _guard(
        request: Request,
        bearer: Optional[str] = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db),
        tokens: TokenService = Depends(get_token_service),
    ) -> User:
        # Priority: Header > Cookie
        token = bearer or token_from_cookie_header(request.headers.get("cookie"))
        decision = await authorize(db, tokens, token, roles)
        if decision.outcome is AccessOutcome.UNAUTHENTICATED:
            raise AuthError(decision.reason, status.HTTP_401_UNAUTHORIZED)
        if not decision.allowed:
            raise AuthError(decision.reason, status.HTTP_403_FORBIDDEN)
        return decision.user  # type: ignore[return-value]

    return _guard


require_user = require_roles(UserRole.USER.value)
require_admin = require_roles(UserRole.ADMIN.value)
require_any_role = require_roles(UserRole.USER.value, UserRole.ADMIN.value)

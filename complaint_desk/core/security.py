"""
Session tokens (JWT, HS256), password hashing (bcrypt) and
email-verification codes.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from complaint_desk.core.config import Settings, settings
from complaint_desk.core.exceptions import InvalidToken

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

OTP_MIN = 100000
OTP_MAX = 999999


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


# ── Verification codes ──────────────────────────────────────────────
def generate_otp() -> str:
    """Six-digit code, uniform over 100000..999999 (not a CSPRNG)."""
    return str(random.randint(OTP_MIN, OTP_MAX))


# ── JWT session tokens ──────────────────────────────────────────────
def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Identity:
    id: str
    role: str


class TokenService:
    """Issues and verifies the signed session token stored in ``auth_token``."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        lifetime: timedelta = timedelta(hours=2),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self.lifetime = lifetime
        self._clock = clock

    @classmethod
    def from_settings(cls, config: Settings) -> TokenService:
        return cls(
            secret=config.SECRET_KEY,
            algorithm=config.ALGORITHM,
            lifetime=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def issue(self, identity: Identity) -> str:
        issued_at = self._clock()
        return jwt.encode(
            {
                "sub": str(identity.id),
                "role": identity.role,
                "iat": int(issued_at.timestamp()),
                "exp": int((issued_at + self.lifetime).timestamp()),
            },
            self._secret,
            algorithm=self._algorithm,
        )

    def verify(self, token: str) -> Identity:
        """Return the identity in *token* or raise :class:`InvalidToken`."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidToken("Invalid or expired token") from exc

        user_id = payload.get("sub")
        role = payload.get("role")
        if not user_id or not role or "exp" not in payload:
            logger.debug("Token rejected: missing claims")
            raise InvalidToken("Invalid or expired token")
        return Identity(id=str(user_id), role=str(role))


token_service = TokenService.from_settings(settings)

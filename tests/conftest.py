"""
Shared test fixtures for the Complaint Desk test suite.

Every test gets a fresh in-memory aiosqlite database, a notifier that
records outgoing emails instead of sending them, and an httpx client
wired to the ASGI app.
"""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from complaint_desk.api.deps import get_db, get_notifier, get_token_service
from complaint_desk.core.config import Settings
from complaint_desk.core.exceptions import NotificationFailure
from complaint_desk.core.security import Identity, TokenService, get_password_hash
from complaint_desk.db.base import Base
from complaint_desk.db.session import build_engine, build_session_factory
from complaint_desk.main import app
from complaint_desk.models.user import User
from complaint_desk.services.notifications import EmailContent, Notifier

TEST_SECRET = "test-secret-key-not-for-production"
DEFAULT_PASSWORD = "password123"


class RecordingSender:
    """EmailSender double that keeps every message in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, EmailContent]] = []

    def send(self, sender: str, to: str, content: EmailContent) -> None:
        self.sent.append((to, content))

    def recipients(self) -> list[str]:
        return [to for to, _ in self.sent]

    def to(self, address: str) -> list[EmailContent]:
        return [content for to, content in self.sent if to == address]

    def clear(self) -> None:
        self.sent.clear()


class FailingSender(RecordingSender):
    """Fails the first ``failures`` deliveries, then behaves like RecordingSender."""

    def __init__(self, failures: int = 10**6) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def send(self, sender: str, to: str, content: EmailContent) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise NotificationFailure("SMTP server unavailable")
        super().send(sender, to, content)


def email_settings(**overrides) -> Settings:
    values = {
        "EMAIL_USER": "noreply@complaints.test",
        "EMAIL_PASS": "app-password",
        "EMAIL_RETRY_BACKOFF_SECONDS": 0,
        "EMAIL_MAX_ATTEMPTS": 3,
    }
    values.update(overrides)
    return Settings(**values)


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test, shared by the app and the test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = build_session_factory(engine)

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    yield factory
    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


# ── Collaborators ───────────────────────────────────────────────────
@pytest.fixture
def outbox() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def notifier(outbox: RecordingSender) -> Notifier:
    return Notifier(email_settings(), sender=outbox)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, lifetime=timedelta(hours=2))


@pytest.fixture
async def async_client(
    session_factory, notifier: Notifier, tokens: TokenService
) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_token_service] = lambda: tokens
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_notifier, None)
    app.dependency_overrides.pop(get_token_service, None)


# ── Factories ───────────────────────────────────────────────────────
@pytest.fixture
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(
        role: str = "user",
        verified: bool = True,
        username: str | None = None,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            username=username or f"{role}{n}",
            email=email or f"{role}{n}@example.com",
            hashed_password=get_password_hash(password),
            role=role,
            is_verified=verified,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(tokens: TokenService):
    """Raw ``Cookie`` header carrying a session token for *user*."""

    def _headers(user: User) -> dict[str, str]:
        token = tokens.issue(Identity(id=str(user.id), role=user.role))
        return {"Cookie": f"auth_token={token}"}

    return _headers


@pytest.fixture
def complaint_payload() -> dict[str, str]:
    return {
        "title": "Broken charger",
        "description": "The charger stopped working after two days of use.",
        "category": "Product",
        "priority": "High",
    }

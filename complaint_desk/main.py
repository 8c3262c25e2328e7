"""
Complaint Desk: application entry point.

This is the **only** file that assembles the app.  Business logic lives
in `services/`; `api/` and `web/` are thin HTTP surfaces over it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import select

from complaint_desk.api.api import api_router
from complaint_desk.core.config import settings
from complaint_desk.core.exceptions import register_exception_handlers
from complaint_desk.core.rate_limit import limiter
from complaint_desk.core.security import get_password_hash
from complaint_desk.db.base import Base
from complaint_desk.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from complaint_desk.models.complaint import Complaint  # noqa: F401
from complaint_desk.models.user import User, UserRole
from complaint_desk.web.pages import router as pages_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_first_admin() -> None:
    """Create a verified admin from FIRST_ADMIN_* settings if none exists."""
    if not settings.FIRST_ADMIN_EMAIL or not settings.FIRST_ADMIN_PASSWORD:
        return
    email = settings.FIRST_ADMIN_EMAIL.strip().lower()
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none() is not None:
            return
        session.add(
            User(
                username=settings.FIRST_ADMIN_USERNAME,
                email=email,
                hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                role=UserRole.ADMIN.value,
                is_verified=True,
            )
        )
        await session.commit()
        logger.info("Default admin created: %s (password: <redacted>)", email)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings.check_secret_key()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    await seed_first_admin()

    logger.info("%s v%s started (%s)", settings.PROJECT_NAME, settings.VERSION, settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Complaint submission, triage and notification service",
        version=settings.VERSION,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting on credential endpoints
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # JSON API
    application.include_router(api_router, prefix=settings.API_PREFIX)

    # Server-rendered pages
    application.include_router(pages_router)

    return application


app = create_app()

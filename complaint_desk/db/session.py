"""
Async SQLAlchemy engine & session factory.

PostgreSQL (asyncpg) gets a sized connection pool; SQLite (aiosqlite) is
for local runs and the test suite.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from complaint_desk.core.config import settings


def engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {
        "echo": False,
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql"):
        options.update(
            {
                "pool_size": 20,
                "max_overflow": 10,
                "pool_recycle": 300,
            }
        )
    elif url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    return options


def build_engine(url: str, **overrides: Any) -> AsyncEngine:
    return create_async_engine(url, **{**engine_options(url), **overrides})


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Objects stay readable after commit; handlers render them post-commit.
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
async_session_factory = build_session_factory(engine)

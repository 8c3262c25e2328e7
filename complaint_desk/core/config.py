"""
Centralised application settings loaded from environment / .env file.

Uses pydantic-settings so every value can be overridden via env vars
or the .env file at the project root.  The ``settings`` instance is built
once at import time and handed to the token service and the notifier;
business logic never reads ``os.environ`` directly.
"""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

INSECURE_DEFAULT_SECRET = "default_secret_for_dev_only_do_not_use_in_prod"


class Settings(BaseSettings):
    # ── Project ──────────────────────────────────────────────────────
    PROJECT_NAME: str = "Complaint Desk"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"  # development | production | test

    # ── Database (async SQLAlchemy URL) ─────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./complaint_desk.db"

    # ── JWT session tokens ──────────────────────────────────────────
    SECRET_KEY: str = INSECURE_DEFAULT_SECRET
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120
    AUTH_COOKIE_NAME: str = "auth_token"

    # ── Email verification ──────────────────────────────────────────
    OTP_EXPIRE_MINUTES: int = 10

    # ── Outbound email (SMTP) ───────────────────────────────────────
    EMAIL_USER: str | None = None
    EMAIL_PASS: str | None = None
    EMAIL_FROM_NAME: str = "Complaint App"
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_TIMEOUT: float = 10.0
    EMAIL_MAX_ATTEMPTS: int = 3
    EMAIL_RETRY_BACKOFF_SECONDS: float = 0.5

    # ── Rate limiting ───────────────────────────────────────────────
    RATE_LIMIT_ENABLED: bool = True

    # ── CORS ─────────────────────────────────────────────────────────
    CORS_ORIGINS: list[str] = [
        "http://localhost",
        "http://localhost:8000",
        "http://127.0.0.1",
        "http://127.0.0.1:8000",
    ]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v: object) -> list[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v  # type: ignore[return-value]

    @field_validator("EMAIL_MAX_ATTEMPTS")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("EMAIL_MAX_ATTEMPTS must be >= 1")
        return v

    # ── Logging ──────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"

    # ── Default admin (seeded on startup when an email is given) ────
    FIRST_ADMIN_EMAIL: str | None = None
    FIRST_ADMIN_USERNAME: str = "admin"
    FIRST_ADMIN_PASSWORD: str | None = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        return self.is_production

    @property
    def session_max_age(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def email_configured(self) -> bool:
        return bool(self.EMAIL_USER and self.EMAIL_PASS)

    def check_secret_key(self) -> None:
        """Refuse to run production traffic with the development secret."""
        if self.SECRET_KEY != INSECURE_DEFAULT_SECRET:
            return
        if self.is_production:
            raise RuntimeError(
                "SECRET_KEY is not set. Refusing to start in production with "
                "the insecure development default."
            )
        logging.getLogger("complaint_desk.core.config").warning(
            "⚠️  WARNING: You are running with the default INSECURE Secret Key! "
            "Set SECRET_KEY in your environment or .env file."
        )


settings = Settings()

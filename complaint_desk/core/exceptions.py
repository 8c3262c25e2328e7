"""
Domain errors and global exception handlers.

Handlers turn every failure into a ``{"success": false, ...}`` body so
stack traces and storage details never reach the client.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from complaint_desk.core.session_cookie import clear_session_cookie

logger = logging.getLogger(__name__)

GENERIC_VERIFICATION_MESSAGE = "Invalid or expired verification code."


# ── Domain errors ───────────────────────────────────────────────────
class AuthError(Exception):
    """Not authenticated (401) or authenticated but forbidden (403)."""

    def __init__(self, message: str, status_code: int = status.HTTP_401_UNAUTHORIZED):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidToken(Exception):
    """Session token failed signature, format or expiry checks."""


class InvalidCredentials(Exception):
    """Unknown email or wrong password; deliberately indistinguishable."""

    message = "Invalid credentials."


class DuplicateAccount(Exception):
    message = "User with this email or username already exists."


class VerificationError(Exception):
    """Base for the email-verification failures."""


class UserNotFound(VerificationError):
    pass


class InvalidCode(VerificationError):
    pass


class CodeExpired(VerificationError):
    pass


class FieldValidationError(Exception):
    """Field-level validation failure, surfaced verbatim to the caller."""

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation failed."):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ComplaintValidationError(FieldValidationError):
    pass


class ComplaintNotFound(Exception):
    message = "Complaint not found."


class NotificationFailure(Exception):
    """An email could not be delivered. Logged, never propagated."""


class PageRedirect(Exception):
    """Raised by page dependencies to transfer control to another page."""

    def __init__(self, url: str, clear_session: bool = False):
        super().__init__(url)
        self.url = url
        self.clear_session = clear_session


def flatten_validation_errors(errors: list[dict[str, Any]]) -> dict[str, list[str]]:
    """Group pydantic error dicts by top-level field name."""
    flat: dict[str, list[str]] = {}
    for err in errors:
        loc = [part for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        if err.get("type") == "json_invalid" or (loc and not isinstance(loc[0], str)):
            # undecodable bodies report a character offset, not a field
            field = "body"
        else:
            field = str(loc[0]) if loc else "__root__"
        if err.get("type") == "missing":
            msg = f"{field.replace('_', ' ').capitalize()} is required."
        else:
            msg = str(err.get("msg", "Invalid value.")).removeprefix("Value error, ")
        flat.setdefault(field, []).append(msg)
    return flat


# ── Handlers ────────────────────────────────────────────────────────
def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


async def _auth_error_handler(_request: Request, exc: AuthError) -> JSONResponse:
    return _error(exc.status_code, exc.message)


async def _field_validation_handler(_request: Request, exc: FieldValidationError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, exc.message, errors=exc.errors)


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "Validation failed.",
        errors=flatten_validation_errors(list(exc.errors())),
    )


async def _invalid_credentials_handler(_request: Request, exc: InvalidCredentials) -> JSONResponse:
    return _error(status.HTTP_401_UNAUTHORIZED, exc.message)


async def _verification_error_handler(_request: Request, exc: VerificationError) -> JSONResponse:
    logger.info("Email verification rejected: %s", type(exc).__name__)
    return _error(status.HTTP_400_BAD_REQUEST, GENERIC_VERIFICATION_MESSAGE)


async def _duplicate_account_handler(_request: Request, exc: DuplicateAccount) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, exc.message)


async def _complaint_not_found_handler(_request: Request, exc: ComplaintNotFound) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, exc.message)


async def _page_redirect_handler(request: Request, exc: PageRedirect) -> RedirectResponse:
    response = RedirectResponse(exc.url, status_code=status.HTTP_303_SEE_OTHER)
    if exc.clear_session:
        clear_session_cookie(response)
    return response


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return _error(status.HTTP_409_CONFLICT, "Database constraint violation")


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Operation failed. Please try again.")


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(AuthError, _auth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(FieldValidationError, _field_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidCredentials, _invalid_credentials_handler)  # type: ignore[arg-type]
    app.add_exception_handler(VerificationError, _verification_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DuplicateAccount, _duplicate_account_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ComplaintNotFound, _complaint_not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PageRedirect, _page_redirect_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)

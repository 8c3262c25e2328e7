"""
Server-rendered pages.

Access is enforced with redirects instead of status codes: anonymous or
wrong-role visitors go to ``/login``, unverified accounts go to
``/verify-email``.  Both decisions come from the same ``authorize`` policy
the JSON API uses.
"""

import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from complaint_desk.api.deps import get_db, get_notifier, get_token_service
from complaint_desk.core.config import settings
from complaint_desk.core.exceptions import (
    GENERIC_VERIFICATION_MESSAGE,
    ComplaintNotFound,
    ComplaintValidationError,
    DuplicateAccount,
    InvalidCredentials,
    PageRedirect,
    VerificationError,
    flatten_validation_errors,
)
from complaint_desk.core.rate_limit import (
    login_limit,
    resend_code_limit,
    signup_limit,
    verify_email_limit,
)
from complaint_desk.core.security import TokenService
from complaint_desk.core.session_cookie import clear_session_cookie, set_session_cookie
from complaint_desk.models.complaint import CATEGORY_VALUES, PRIORITY_VALUES, STATUS_VALUES
from complaint_desk.models.user import User, UserRole
from complaint_desk.schemas.user import LoginRequest, SignupRequest, VerifyEmailRequest
from complaint_desk.services import auth_service, complaint_service
from complaint_desk.services.access_control import AccessDecision, AccessOutcome, authorize
from complaint_desk.services.notifications import Notifier

router = APIRouter(include_in_schema=False)
logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
templates.env.globals.update(
    categories=CATEGORY_VALUES,
    priorities=PRIORITY_VALUES,
    statuses=STATUS_VALUES,
    app_name=settings.PROJECT_NAME,
)

ALL_ROLES = (UserRole.USER.value, UserRole.ADMIN.value)
SUBMITTED_MESSAGE = "Complaint submitted successfully!"
ADMIN_ERRORS = {
    "update": "Could not update the complaint status.",
    "delete": "Could not delete the complaint.",
}


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


def _verify_url(email: str, **extra: str) -> str:
    return "/verify-email?" + urlencode({"email": email, **extra})


def _dashboard_url(user: User) -> str:
    return "/admin/dashboard" if user.is_admin else "/user/dashboard"


# ── Session dependencies ────────────────────────────────────────────
async def current_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> AccessDecision:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    return await authorize(db, tokens, token, ALL_ROLES)


async def redirect_if_signed_in(
    decision: AccessDecision = Depends(current_session),
) -> None:
    """Send already signed-in, verified visitors straight to their dashboard."""
    if decision.allowed and decision.user is not None:
        raise PageRedirect(_dashboard_url(decision.user))


def page_guard(*roles: str):
    async def _guard(
        request: Request,
        db: AsyncSession = Depends(get_db),
        tokens: TokenService = Depends(get_token_service),
    ) -> User:
        token = request.cookies.get(settings.AUTH_COOKIE_NAME)
        decision = await authorize(db, tokens, token, roles)
        if decision.outcome is AccessOutcome.UNVERIFIED and decision.user is not None:
            raise PageRedirect(_verify_url(decision.user.email))
        if not decision.allowed:
            logger.info("Page access denied (%s); redirecting to /login", decision.outcome.value)
            raise PageRedirect("/login", clear_session=decision.token_rejected)
        return decision.user  # type: ignore[return-value]

    return _guard


user_page = page_guard(UserRole.USER.value)
admin_page = page_guard(UserRole.ADMIN.value)


def _render(
    request: Request,
    name: str,
    context: Optional[dict[str, Any]] = None,
    status_code: int = status.HTTP_200_OK,
) -> HTMLResponse:
    return templates.TemplateResponse(request, name, context or {}, status_code=status_code)


# ── Landing & role selection ────────────────────────────────────────
@router.get("/", response_class=HTMLResponse, dependencies=[Depends(redirect_if_signed_in)])
async def landing(request: Request) -> HTMLResponse:
    return _render(request, "landing.html")


@router.get(
    "/auth-selection",
    response_class=HTMLResponse,
    dependencies=[Depends(redirect_if_signed_in)],
)
async def auth_selection(
    request: Request, requested: str = Query(default="login", alias="type")
) -> HTMLResponse:
    auth_type = requested if requested in ("login", "signup") else "login"
    return _render(request, "auth_selection.html", {"auth_type": auth_type})


# ── Login ───────────────────────────────────────────────────────────
@router.get("/login", response_class=HTMLResponse, dependencies=[Depends(redirect_if_signed_in)])
async def login_page(request: Request, role: str = Query(default="user")) -> HTMLResponse:
    return _render(request, "login.html", {"role": role})


@router.post("/login", response_model=None)
@login_limit
async def login_submit(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    tokens: TokenService = Depends(get_token_service),
) -> HTMLResponse | RedirectResponse:
    try:
        form = LoginRequest(email=email, password=password)
    except ValidationError as exc:
        return _render(
            request,
            "login.html",
            {"message": "Validation failed.", "errors": flatten_validation_errors(list(exc.errors())), "email": email},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        result = await auth_service.login(db, notifier, tokens, form.email, form.password)
    except InvalidCredentials as exc:
        return _render(
            request,
            "login.html",
            {"message": exc.message, "email": email},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    if result.verification_required:
        return _redirect(_verify_url(result.user.email, sent="1"))

    response = _redirect(_dashboard_url(result.user))
    set_session_cookie(response, result.token)  # type: ignore[arg-type]
    return response


# ── Signup ──────────────────────────────────────────────────────────
@router.get("/signup", response_class=HTMLResponse, dependencies=[Depends(redirect_if_signed_in)])
async def signup_page(request: Request, role: str = Query(default="user")) -> HTMLResponse:
    return _render(request, "signup.html", {"role": role})


@router.post("/signup", response_model=None)
@signup_limit
async def signup_submit(
    request: Request,
    username: str = Form(default=""),
    email: str = Form(default=""),
    password: str = Form(default=""),
    role: str = Form(default=UserRole.USER.value),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> HTMLResponse | RedirectResponse:
    context: dict[str, Any] = {"username": username, "email": email, "role": role}
    try:
        form = SignupRequest(username=username, email=email, password=password, role=role)
    except ValidationError as exc:
        context.update(message="Validation failed.", errors=flatten_validation_errors(list(exc.errors())))
        return _render(request, "signup.html", context, status_code=status.HTTP_400_BAD_REQUEST)

    try:
        user = await auth_service.signup(db, notifier, form)
    except DuplicateAccount as exc:
        context.update(message=exc.message)
        return _render(request, "signup.html", context, status_code=status.HTTP_409_CONFLICT)

    return _redirect(_verify_url(user.email, sent="1"))


# ── Email verification ──────────────────────────────────────────────
@router.get("/verify-email", response_class=HTMLResponse)
async def verify_email_page(
    request: Request,
    email: str = Query(default=""),
    sent: Optional[str] = Query(default=None),
) -> HTMLResponse:
    return _render(request, "verify_email.html", {"email": email, "sent": bool(sent)})


@router.post("/verify-email", response_model=None)
@verify_email_limit
async def verify_email_submit(
    request: Request,
    email: str = Form(default=""),
    otp: str = Form(default=""),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> HTMLResponse | RedirectResponse:
    try:
        form = VerifyEmailRequest(email=email, otp=otp)
    except ValidationError as exc:
        return _render(
            request,
            "verify_email.html",
            {"email": email, "message": "Validation failed.", "errors": flatten_validation_errors(list(exc.errors()))},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        result = await auth_service.verify_email(db, tokens, form.email, form.otp)
    except VerificationError as exc:
        logger.info("Email verification rejected for page submit: %s", type(exc).__name__)
        return _render(
            request,
            "verify_email.html",
            {"email": email, "message": GENERIC_VERIFICATION_MESSAGE},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    response = _redirect(_dashboard_url(result.user))
    set_session_cookie(response, result.token)  # type: ignore[arg-type]
    return response


@router.post("/verify-email/resend")
@resend_code_limit
async def verify_email_resend(
    request: Request,
    email: str = Form(default=""),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> RedirectResponse:
    await auth_service.resend_code(db, notifier, email)
    return _redirect(_verify_url(email.strip().lower(), sent="1"))


@router.post("/logout")
async def logout() -> RedirectResponse:
    response = _redirect("/login")
    clear_session_cookie(response)
    return response


# ── User dashboard ──────────────────────────────────────────────────
@router.get("/user/dashboard", response_class=HTMLResponse)
async def user_dashboard(
    request: Request,
    submitted: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(user_page),
) -> HTMLResponse:
    complaints = await complaint_service.list_complaints(db, user.role, user.id)
    return _render(
        request,
        "user_dashboard.html",
        {
            "user": user,
            "complaints": complaints,
            "message": SUBMITTED_MESSAGE if submitted else None,
        },
    )


@router.post("/user/complaints", response_model=None)
async def user_submit_complaint(
    request: Request,
    title: str = Form(default=""),
    description: str = Form(default=""),
    category: str = Form(default=""),
    priority: str = Form(default=""),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: User = Depends(user_page),
) -> HTMLResponse | RedirectResponse:
    fields = {"title": title, "description": description, "category": category, "priority": priority}
    try:
        await complaint_service.submit_complaint(db, notifier, user.id, fields)
    except ComplaintValidationError as exc:
        complaints = await complaint_service.list_complaints(db, user.role, user.id)
        return _render(
            request,
            "user_dashboard.html",
            {"user": user, "complaints": complaints, "form": fields, "message": exc.message, "errors": exc.errors},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return _redirect("/user/dashboard?submitted=1")


# ── Admin dashboard ─────────────────────────────────────────────────
@router.get("/admin/dashboard", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    status_filter: str = Query(default="all", alias="status"),
    priority_filter: str = Query(default="all", alias="priority"),
    error: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(admin_page),
) -> HTMLResponse:
    complaints = await complaint_service.list_complaints(
        db, admin.role, admin.id, status_filter=status_filter, priority_filter=priority_filter
    )
    return _render(
        request,
        "admin_dashboard.html",
        {
            "user": admin,
            "complaints": complaints,
            "status_filter": status_filter,
            "priority_filter": priority_filter,
            "message": ADMIN_ERRORS.get(error or ""),
        },
    )


@router.post("/admin/complaints/{complaint_id}/status")
async def admin_update_status(
    complaint_id: int,
    new_status: str = Form(default="", alias="status"),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    admin: User = Depends(admin_page),
) -> RedirectResponse:
    try:
        await complaint_service.update_complaint_status(db, notifier, complaint_id, new_status)
    except (ComplaintNotFound, ComplaintValidationError) as exc:
        logger.info("Admin %s status update on %s rejected: %s", admin.id, complaint_id, exc)
        return _redirect("/admin/dashboard?error=update")
    return _redirect("/admin/dashboard")


@router.post("/admin/complaints/{complaint_id}/delete")
async def admin_delete(
    complaint_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(admin_page),
) -> RedirectResponse:
    try:
        await complaint_service.delete_complaint(db, complaint_id)
    except ComplaintNotFound:
        logger.info("Admin %s tried to delete missing complaint %s", admin.id, complaint_id)
        return _redirect("/admin/dashboard?error=delete")
    return _redirect("/admin/dashboard")

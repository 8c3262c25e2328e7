"""
Auth endpoints: signup, login, email verification, logout.

Sessions are carried in the HttpOnly ``auth_token`` cookie; the token is
only set once the account's email address has been verified.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from complaint_desk.api.deps import get_db, get_notifier, get_token_service, require_any_role
from complaint_desk.core.rate_limit import (
    login_limit,
    resend_code_limit,
    signup_limit,
    verify_email_limit,
)
from complaint_desk.core.security import TokenService
from complaint_desk.core.session_cookie import clear_session_cookie, set_session_cookie
from complaint_desk.models.user import User
from complaint_desk.schemas.user import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    ResendCodeRequest,
    SignupRequest,
    UserRead,
    VerifyEmailRequest,
)
from complaint_desk.services import auth_service
from complaint_desk.services.notifications import Notifier

router = APIRouter(prefix="/auth", tags=["auth"])


def verify_email_path(email: str) -> str:
    return f"/verify-email?email={quote(email)}"


def dashboard_path(user: User) -> str:
    return "/admin/dashboard" if user.is_admin else "/user/dashboard"


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@signup_limit
async def signup(
    request: Request,
    body: SignupRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> AuthResponse:
    """Create an unverified account and email it a verification code."""
    user = await auth_service.signup(db, notifier, body)
    return AuthResponse(
        success=True,
        message="Signup successful! Please check your email for a verification OTP.",
        user=UserRead.model_validate(user),
        redirect_path=verify_email_path(user.email),
        verification_required=True,
    )


@router.post("/login", response_model=AuthResponse)
@login_limit
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    tokens: TokenService = Depends(get_token_service),
) -> AuthResponse:
    """Authenticate with email/password. Sets the session cookie when verified."""
    result = await auth_service.login(db, notifier, tokens, body.email, body.password)

    if result.verification_required:
        response.status_code = status.HTTP_202_ACCEPTED
        return AuthResponse(
            success=False,
            message="Please verify your email. An OTP has been sent to your email address.",
            redirect_path=verify_email_path(result.user.email),
            verification_required=True,
        )

    set_session_cookie(response, result.token)  # type: ignore[arg-type]
    return AuthResponse(
        success=True,
        message="Logged in.",
        user=UserRead.model_validate(result.user),
        redirect_path=dashboard_path(result.user),
    )


@router.post("/verify-email", response_model=AuthResponse)
@verify_email_limit
async def verify_email(
    request: Request,
    response: Response,
    body: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> AuthResponse:
    """Confirm the emailed code, mark the account verified and start a session."""
    result = await auth_service.verify_email(db, tokens, body.email, body.otp)
    set_session_cookie(response, result.token)  # type: ignore[arg-type]
    return AuthResponse(
        success=True,
        message="Email verified successfully.",
        user=UserRead.model_validate(result.user),
        redirect_path=dashboard_path(result.user),
    )


@router.post("/resend-code", response_model=MessageResponse)
@resend_code_limit
async def resend_code(
    request: Request,
    body: ResendCodeRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> MessageResponse:
    await auth_service.resend_code(db, notifier, body.email)
    return MessageResponse(
        message="If the account exists and is unverified, a new OTP has been sent."
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """Clear the session cookie. The token itself stays valid until it expires."""
    clear_session_cookie(response)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserRead)
async def read_current_user(current_user: User = Depends(require_any_role)) -> User:
    """Return profile of the currently authenticated user."""
    return current_user

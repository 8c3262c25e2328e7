"""Per-client-IP rate limiting for the credential endpoints (slowapi)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from complaint_desk.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# The JSON API and the HTML forms draw on the same per-IP budget.
signup_limit = limiter.shared_limit("10/minute", scope="signup")
login_limit = limiter.shared_limit("5/minute", scope="login")
verify_email_limit = limiter.shared_limit("10/minute", scope="verify-email")
resend_code_limit = limiter.shared_limit("3/minute", scope="resend-code")

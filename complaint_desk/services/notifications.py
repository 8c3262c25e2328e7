"""
Best-effort outbound email.

Every lifecycle email goes through :class:`Notifier`.  Delivery failures are
retried a bounded number of times, then logged; they never reach the caller
that triggered the email.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from html import escape
from typing import Protocol

from complaint_desk.core.config import Settings, settings
from complaint_desk.core.exceptions import NotificationFailure
from complaint_desk.models.complaint import Complaint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailContent:
    subject: str
    text: str
    html: str


class EmailSender(Protocol):
    def send(self, sender: str, to: str, content: EmailContent) -> None: ...


class SmtpEmailSender:
    """Blocking SMTP transport (STARTTLS + login)."""

    def __init__(self, config: Settings) -> None:
        self._host = config.SMTP_HOST
        self._port = config.SMTP_PORT
        self._timeout = config.SMTP_TIMEOUT
        self._user = config.EMAIL_USER
        self._password = config.EMAIL_PASS

    def send(self, sender: str, to: str, content: EmailContent) -> None:
        try:
            msg = EmailMessage()
            msg["From"] = sender
            msg["To"] = to
            msg["Subject"] = content.subject
            msg.set_content(content.text)
            msg.add_alternative(content.html, subtype="html")
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                smtp.starttls()
                smtp.login(self._user or "", self._password or "")
                smtp.send_message(msg)
        except ValueError as exc:
            # header values with line breaks are refused by the email package
            raise NotificationFailure(f"Malformed email to {to}: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationFailure(f"SMTP delivery to {to} failed: {exc}") from exc


class Notifier:
    def __init__(self, config: Settings, sender: EmailSender | None = None) -> None:
        self._config = config
        self._sender = sender or SmtpEmailSender(config)
        self._from = f'"{config.EMAIL_FROM_NAME}" <{config.EMAIL_USER}>'

    @property
    def enabled(self) -> bool:
        return self._config.email_configured

    async def send(self, to: str, content: EmailContent) -> bool:
        """Deliver *content* to *to*; return whether it went out."""
        if not self.enabled:
            logger.warning(
                "Email sending skipped (EMAIL_USER / EMAIL_PASS not set): %r to %s",
                content.subject,
                to,
            )
            return False
        try:
            await self._deliver_with_retry(to, content)
        except NotificationFailure as exc:
            logger.error("Email %r to %s not delivered: %s", content.subject, to, exc)
            return False
        except Exception:
            logger.exception("Unexpected error while emailing %s (%r)", to, content.subject)
            return False
        logger.info("Email sent to %s with subject: %s", to, content.subject)
        return True

    async def _deliver_with_retry(self, to: str, content: EmailContent) -> None:
        attempts = self._config.EMAIL_MAX_ATTEMPTS
        loop = asyncio.get_running_loop()
        for attempt in range(1, attempts + 1):
            try:
                await loop.run_in_executor(None, self._sender.send, self._from, to, content)
                return
            except NotificationFailure as exc:
                if attempt == attempts:
                    raise
                logger.warning("Email attempt %d/%d to %s failed: %s", attempt, attempts, to, exc)
                await asyncio.sleep(self._config.EMAIL_RETRY_BACKOFF_SECONDS * attempt)


# ── Templates ───────────────────────────────────────────────────────
def _stamp(when: datetime | None = None) -> str:
    return (when or datetime.now(timezone.utc)).strftime("%B %d, %Y %H:%M UTC")


def _one_line(value: str) -> str:
    """Collapse line breaks so user text is safe in a header."""
    return " ".join(value.split())


def verification_code_email(code: str, minutes: int) -> EmailContent:
    return EmailContent(
        subject="Verify Your Email for Complaint Management App",
        text=f"Your OTP for email verification is: {code}. It is valid for {minutes} minutes.",
        html=(
            f"<p>Your OTP for email verification is: <strong>{code}</strong>.</p>"
            f"<p>It is valid for {minutes} minutes.</p>"
        ),
    )


def complaint_submitted_author_email(username: str, complaint: Complaint) -> EmailContent:
    title = complaint.title
    return EmailContent(
        subject=f'Your Complaint "{_one_line(title)}" Has Been Submitted',
        text=(
            f"Dear {username},\n\n"
            f'Your complaint "{title}" has been successfully submitted.\n\n'
            f"Details:\nCategory: {complaint.category}\nPriority: {complaint.priority}\n"
            f"Description: {complaint.description}\n\nWe will review it shortly."
        ),
        html=(
            f"<p>Dear {escape(username)},</p>"
            f'<p>Your complaint "<strong>{escape(title)}</strong>" has been successfully submitted.</p>'
            "<p><strong>Details:</strong></p><ul>"
            f"<li><strong>Category:</strong> {escape(complaint.category)}</li>"
            f"<li><strong>Priority:</strong> {escape(complaint.priority)}</li>"
            f"<li><strong>Description:</strong> {escape(complaint.description)}</li>"
            "</ul><p>We will review it shortly.</p>"
        ),
    )


def complaint_submitted_admin_email(submitter: str, complaint: Complaint) -> EmailContent:
    return EmailContent(
        subject=f"New Complaint Submitted: {_one_line(complaint.title)}",
        text=(
            f"A new complaint has been submitted by {submitter}.\n\n"
            f"Title: {complaint.title}\nCategory: {complaint.category}\n"
            f"Priority: {complaint.priority}\nDescription: {complaint.description}\n\n"
            f"Complaint ID: {complaint.id}"
        ),
        html=(
            f"<p>A new complaint has been submitted by <strong>{escape(submitter)}</strong>.</p>"
            "<p><strong>Details:</strong></p><ul>"
            f"<li><strong>Title:</strong> {escape(complaint.title)}</li>"
            f"<li><strong>Category:</strong> {escape(complaint.category)}</li>"
            f"<li><strong>Priority:</strong> {escape(complaint.priority)}</li>"
            f"<li><strong>Description:</strong> {escape(complaint.description)}</li>"
            f"</ul><p><strong>Complaint ID:</strong> {complaint.id}</p>"
        ),
    )


def status_changed_admin_email(complaint: Complaint, when: datetime | None = None) -> EmailContent:
    stamp = _stamp(when)
    return EmailContent(
        subject=f"Complaint Status Updated: {_one_line(complaint.title)}",
        text=(
            f'The status of complaint "{complaint.title}" has been updated to: {complaint.status}.\n\n'
            f"Updated On: {stamp}\nComplaint ID: {complaint.id}"
        ),
        html=(
            f'<p>The status of complaint "<strong>{escape(complaint.title)}</strong>" has been '
            f"updated to: <strong>{escape(complaint.status)}</strong>.</p>"
            f"<p><strong>Updated On:</strong> {stamp}</p>"
            f"<p><strong>Complaint ID:</strong> {complaint.id}</p>"
        ),
    )


def status_changed_author_email(username: str, complaint: Complaint, when: datetime | None = None) -> EmailContent:
    stamp = _stamp(when)
    return EmailContent(
        subject=f'Your Complaint "{_one_line(complaint.title)}" Status Updated',
        text=(
            f"Dear {username},\n\n"
            f'Your complaint "{complaint.title}" has been updated to: {complaint.status}.\n\n'
            f"Updated On: {stamp}\n\nThank you for your patience."
        ),
        html=(
            f"<p>Dear {escape(username)},</p>"
            f'<p>Your complaint "<strong>{escape(complaint.title)}</strong>" has been updated to: '
            f"<strong>{escape(complaint.status)}</strong>.</p>"
            f"<p><strong>Updated On:</strong> {stamp}</p><p>Thank you for your patience.</p>"
        ),
    )


notifier = Notifier(settings)


def get_notifier() -> Notifier:
    """FastAPI dependency returning the process-wide notifier."""
    return notifier

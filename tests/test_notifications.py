"""Notifier retry behaviour, email templates and email-related settings."""

import logging
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from complaint_desk.core.config import INSECURE_DEFAULT_SECRET, Settings
from complaint_desk.core.exceptions import NotificationFailure
from complaint_desk.services import complaint_service, notifications
from complaint_desk.services.notifications import (
    EmailContent,
    Notifier,
    SmtpEmailSender,
    complaint_submitted_admin_email,
    complaint_submitted_author_email,
    status_changed_author_email,
    verification_code_email,
)
from conftest import FailingSender, RecordingSender, email_settings

MESSAGE = EmailContent(subject="Hello", text="plain", html="<p>html</p>")


def _complaint(**overrides):
    values = {
        "id": 7,
        "title": "Broken charger",
        "description": "The charger stopped working after two days of use.",
        "category": "Product",
        "priority": "High",
        "status": "Pending",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


# ── Notifier ────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_unconfigured_notifier_skips_with_warning(caplog):
    sender = RecordingSender()
    notifier = Notifier(email_settings(EMAIL_USER=None, EMAIL_PASS=None), sender=sender)
    assert notifier.enabled is False

    with caplog.at_level(logging.WARNING):
        delivered = await notifier.send("someone@example.com", MESSAGE)

    assert delivered is False
    assert sender.sent == []
    assert "Email sending skipped" in caplog.text


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    sender = FailingSender(failures=2)
    notifier = Notifier(email_settings(EMAIL_MAX_ATTEMPTS=3), sender=sender)

    assert await notifier.send("someone@example.com", MESSAGE) is True
    assert sender.attempts == 3
    assert sender.recipients() == ["someone@example.com"]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts_and_logs(caplog):
    sender = FailingSender()
    notifier = Notifier(email_settings(EMAIL_MAX_ATTEMPTS=3), sender=sender)

    with caplog.at_level(logging.ERROR):
        delivered = await notifier.send("someone@example.com", MESSAGE)

    assert delivered is False
    assert sender.attempts == 3
    assert sender.sent == []
    assert "not delivered" in caplog.text


@pytest.mark.asyncio
async def test_sender_address_uses_display_name():
    seen = []

    class CapturingSender:
        def send(self, sender, to, content):
            seen.append(sender)

    notifier = Notifier(
        email_settings(EMAIL_FROM_NAME="Help Desk", EMAIL_USER="desk@example.com"),
        sender=CapturingSender(),
    )
    await notifier.send("someone@example.com", MESSAGE)
    assert seen == ['"Help Desk" <desk@example.com>']


@pytest.mark.asyncio
async def test_unexpected_sender_errors_are_logged_not_raised(caplog):
    class BrokenSender:
        def send(self, sender, to, content):
            raise RuntimeError("boom")

    notifier = Notifier(email_settings(), sender=BrokenSender())
    with caplog.at_level(logging.ERROR):
        delivered = await notifier.send("someone@example.com", MESSAGE)

    assert delivered is False
    assert "Unexpected error while emailing someone@example.com" in caplog.text


# ── SMTP transport ──────────────────────────────────────────────────
class FakeSMTP:
    delivered: list = []

    def __init__(self, host, port, timeout=None):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def send_message(self, msg):
        FakeSMTP.delivered.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.delivered = []
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_smtp_sender_refuses_line_breaks_in_headers(fake_smtp):
    sender = SmtpEmailSender(email_settings())
    content = EmailContent(subject="Hello\nBcc: victim@example.com", text="plain", html="<p>html</p>")

    with pytest.raises(NotificationFailure, match="Malformed email"):
        sender.send("desk@example.com", "someone@example.com", content)
    assert fake_smtp.delivered == []


def test_smtp_sender_builds_multipart_message(fake_smtp):
    SmtpEmailSender(email_settings()).send("desk@example.com", "someone@example.com", MESSAGE)

    [msg] = fake_smtp.delivered
    assert msg["Subject"] == "Hello"
    assert msg["To"] == "someone@example.com"
    assert msg.get_body(("html",)).get_content().strip() == "<p>html</p>"


@pytest.mark.asyncio
async def test_multiline_title_is_emailed_on_one_line(db_session, make_user, complaint_payload, fake_smtp):
    await make_user(role="admin")
    user = await make_user()
    config = email_settings()
    notifier = Notifier(config, sender=SmtpEmailSender(config))

    complaint = await complaint_service.submit_complaint(
        db_session, notifier, user.id, {**complaint_payload, "title": "Broken\r\ncharger"}
    )

    assert complaint.id is not None
    assert complaint.title == "Broken\r\ncharger"
    subjects = sorted(msg["Subject"] for msg in fake_smtp.delivered)
    assert subjects == [
        "New Complaint Submitted: Broken charger",
        'Your Complaint "Broken charger" Has Been Submitted',
    ]


# ── Templates ───────────────────────────────────────────────────────
def test_verification_email_mentions_code_and_validity():
    content = verification_code_email("482913", 10)
    assert content.subject == "Verify Your Email for Complaint Management App"
    assert "482913" in content.text
    assert "10 minutes" in content.text
    assert "<strong>482913</strong>" in content.html


def test_html_parts_escape_user_text():
    complaint = _complaint(title="<script>alert(1)</script>", description="a & b " * 5)
    author_mail = complaint_submitted_author_email("<b>eve</b>", complaint)
    admin_mail = complaint_submitted_admin_email("<b>eve</b>", complaint)

    for content in (author_mail, admin_mail):
        assert "<script>" not in content.html
        assert "&lt;script&gt;" in content.html
        assert "a &amp; b" in content.html
    assert "&lt;b&gt;eve&lt;/b&gt;" in author_mail.html
    # plain-text parts are sent as-is
    assert "<script>alert(1)</script>" in author_mail.text


def test_status_email_carries_new_status_and_timestamp():
    when = datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc)
    content = status_changed_author_email("alice", _complaint(status="Resolved"), when=when)
    assert content.subject == 'Your Complaint "Broken charger" Status Updated'
    assert "has been updated to: Resolved." in content.text
    assert "March 04, 2026 15:30 UTC" in content.text


# ── Settings ────────────────────────────────────────────────────────
def test_email_configured_requires_user_and_password():
    assert email_settings().email_configured is True
    assert email_settings(EMAIL_PASS=None).email_configured is False
    assert email_settings(EMAIL_USER="").email_configured is False


def test_max_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(EMAIL_MAX_ATTEMPTS=0)


def test_cors_origins_accept_comma_separated_list():
    cfg = Settings(CORS_ORIGINS="http://a.test, http://b.test")
    assert cfg.CORS_ORIGINS == ["http://a.test", "http://b.test"]


def test_default_secret_refused_in_production(caplog):
    with pytest.raises(RuntimeError):
        Settings(SECRET_KEY=INSECURE_DEFAULT_SECRET, ENVIRONMENT="production").check_secret_key()

    with caplog.at_level(logging.WARNING):
        Settings(SECRET_KEY=INSECURE_DEFAULT_SECRET, ENVIRONMENT="development").check_secret_key()
    assert "INSECURE" in caplog.text

    Settings(SECRET_KEY="a-real-secret", ENVIRONMENT="production").check_secret_key()


def test_session_cookie_settings():
    assert Settings(ENVIRONMENT="production").cookie_secure is True
    assert Settings(ENVIRONMENT="development").cookie_secure is False
    assert Settings().session_max_age == 7200

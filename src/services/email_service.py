"""
Verification email dispatch.

SMTP delivery runs in a worker thread and is bounded by a timeout. Callers use
dispatch_verification_email(), which never raises: a failed or slow send is
logged and reported as False so account flows can continue.
"""
import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import quote

from fastapi import Depends

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)

SUBJECT = "Verify your email address"


@dataclass
class EmailOutcome:
    """Result of a send attempt. mocked is True when no SMTP server is configured."""

    mocked: bool


class EmailSender(Protocol):
    """Collaborator that delivers a verification link to an address."""

    async def send(self, to_address: str, verification_link: str) -> EmailOutcome:
        """Deliver the link. May raise on transport failure."""
        ...


def build_verification_link(token: str, settings: Settings) -> str:
    """
    Build the link placed in the verification email.

    With FRONTEND_VERIFY_URL set, the frontend page receives the token and calls
    the API; otherwise the link hits the API's verify endpoint directly.
    """
    if settings.frontend_verify_url:
        base = settings.frontend_verify_url.rstrip("/")
        return f"{base}?token={quote(token)}"
    return f"{settings.backend_base}/auth/verify-email?token={quote(token)}"


def _build_message(to_address: str, link: str, from_address: str) -> EmailMessage:
    text_body = (
        "Welcome to Zebra Board!\n\n"
        f"Please verify your email by opening this link:\n{link}\n\n"
        "If you did not create an account, you can ignore this email."
    )
    html_body = (
        "<p>Welcome to <strong>Zebra Board</strong>!</p>"
        "<p>Please verify your email by clicking the button below:</p>"
        f'<p><a href="{link}" style="background:#111;color:#fff;padding:10px 16px;'
        'border-radius:6px;text-decoration:none;display:inline-block;">Verify Email</a></p>'
        "<p style=\"margin-top:12px;\">If the button doesn't work, copy this URL:</p>"
        f"<p><code>{link}</code></p>"
    )

    msg = EmailMessage()
    msg["From"] = from_address
    msg["To"] = to_address
    msg["Subject"] = SUBJECT
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


class SmtpEmailSender:
    """
    EmailSender backed by an SMTP server.

    SMTP_SECURE=true connects with implicit TLS (typically port 465); otherwise
    the connection is upgraded with STARTTLS when the server offers it.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def send(self, to_address: str, verification_link: str) -> EmailOutcome:
        """Send the verification message, or log it when SMTP is not configured."""
        msg = _build_message(to_address, verification_link, self._settings.email_from)
        if not self._settings.smtp_host:
            logger.info(
                "email_mocked",
                extra={"to": to_address, "subject": SUBJECT, "link": verification_link},
            )
            return EmailOutcome(mocked=True)

        await asyncio.to_thread(self._send_sync, msg)
        return EmailOutcome(mocked=False)

    def _send_sync(self, msg: EmailMessage) -> None:
        settings = self._settings
        timeout = settings.email_send_timeout_seconds
        if settings.smtp_secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                settings.smtp_host, settings.smtp_port, timeout=timeout,
            )
        else:
            server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=timeout)
        try:
            if not settings.smtp_secure:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_pass)
            server.send_message(msg)
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                # Connection is being torn down anyway
                pass


def get_email_sender(settings: Settings = Depends(get_settings)) -> EmailSender:
    """Dependency providing the configured email sender."""
    return SmtpEmailSender(settings)


async def dispatch_verification_email(
    email_sender: EmailSender,
    to_address: str,
    token: str,
    settings: Settings,
) -> bool:
    """
    Send a verification email without letting failures escape.

    Returns:
        True if the sender accepted the message (or logged it in mock mode),
        False if it failed or exceeded EMAIL_SEND_TIMEOUT_SECONDS.
    """
    link = build_verification_link(token, settings)
    try:
        await asyncio.wait_for(
            email_sender.send(to_address, link),
            timeout=settings.email_send_timeout_seconds,
        )
    except TimeoutError:
        logger.warning(
            "verification_email_timeout",
            extra={"timeout_seconds": settings.email_send_timeout_seconds},
        )
        return False
    except Exception:
        logger.warning("verification_email_failed", exc_info=True)
        return False
    return True

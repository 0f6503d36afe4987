"""
bookapi/services/notifier.py: Outbound email (Notifier).

Three messages leave the service: the verification code, the approval
notice and the rejection notice. ``SmtpNotifier`` delivers them over SMTP;
``LoggingNotifier`` writes them to the log for local development.
Every failure surfaces as ``NotificationError``; whether it is fatal is
decided by the lifecycle manager, not here.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from html import escape
from typing import Protocol

from bookapi.config import BookApiSettings
from bookapi.exceptions import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Your account was rejected by an admin."

_FOOTER = """
<hr>
<p style="font-size: 12px; color: #666;">BookAPI - Secure Book Management System</p>
"""


class Notifier(Protocol):
    async def send_otp(self, email: str, code: str) -> None: ...

    async def send_approval_notice(self, email: str, username: str) -> None: ...

    async def send_rejection_notice(self, email: str, username: str, reason: str) -> None: ...


# ═══════════════════════════════════════════════════════════════════════════
# Message templates
# ═══════════════════════════════════════════════════════════════════════════


def otp_message(code: str, ttl_minutes: int) -> tuple[str, str]:
    return (
        "BookAPI - Email Verification OTP",
        f"""
<h2>Email Verification</h2>
<p>Welcome to BookAPI!</p>
<p>Your One-Time Password (OTP) for email verification is:</p>
<h1 style="color: #007bff; letter-spacing: 2px;">{code}</h1>
<p>This OTP will expire in {ttl_minutes} minutes.</p>
<p>If you did not request this, please ignore this email.</p>
{_FOOTER}""",
    )


def approval_message(username: str, login_url: str) -> tuple[str, str]:
    return (
        "BookAPI - Account Approved",
        f"""
<h2>Account Approved!</h2>
<p>Hi {escape(username)},</p>
<p>Great news! Your account has been approved by an admin/manager.</p>
<p>You can now log in to BookAPI using your credentials.</p>
<p><strong>Login URL:</strong> {login_url}</p>
{_FOOTER}""",
    )


def rejection_message(username: str, reason: str) -> tuple[str, str]:
    return (
        "BookAPI - Account Status Update",
        f"""
<h2>Account Status Update</h2>
<p>Hi {escape(username)},</p>
<p>{escape(reason)}</p>
<p>If you believe this is a mistake, please contact support.</p>
{_FOOTER}""",
    )


# ═══════════════════════════════════════════════════════════════════════════
# SMTP
# ═══════════════════════════════════════════════════════════════════════════


class SmtpNotifier:
    """
    Sends HTML email through an SMTP relay.

    Port 465 uses implicit TLS, any other port upgrades with STARTTLS.
    ``smtplib`` is blocking, so each send runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "",
        timeout: float = 10.0,
        otp_ttl_minutes: int = 10,
        login_url: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout
        self.otp_ttl_minutes = otp_ttl_minutes
        self.login_url = login_url

    @classmethod
    def from_settings(cls, settings: BookApiSettings) -> "SmtpNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            timeout=settings.smtp_timeout,
            otp_ttl_minutes=settings.otp_ttl_minutes,
            login_url=settings.login_url,
        )

    def _build(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        if self.port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with server:
            if self.port != 465:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def _send(self, to: str, subject: str, html: str) -> None:
        msg = self._build(to, subject, html)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send '%s' to %s: %s", subject, to, exc)
            raise NotificationError(f"Failed to send email to {to}") from exc
        logger.info("Email '%s' sent to %s", subject, to)

    async def send_otp(self, email: str, code: str) -> None:
        await self._send(email, *otp_message(code, self.otp_ttl_minutes))

    async def send_approval_notice(self, email: str, username: str) -> None:
        await self._send(email, *approval_message(username, self.login_url))

    async def send_rejection_notice(self, email: str, username: str, reason: str) -> None:
        await self._send(email, *rejection_message(username, reason))


# ═══════════════════════════════════════════════════════════════════════════
# Development
# ═══════════════════════════════════════════════════════════════════════════


class LoggingNotifier:
    """Writes messages to the log instead of sending them (dev only)."""

    async def send_otp(self, email: str, code: str) -> None:
        logger.info("Email verification code for %s: %s (dev only)", email, code)

    async def send_approval_notice(self, email: str, username: str) -> None:
        logger.info("Approval notice for %s <%s> (dev only)", username, email)

    async def send_rejection_notice(self, email: str, username: str, reason: str) -> None:
        logger.info("Rejection notice for %s <%s>: %s (dev only)", username, email, reason)


def build_notifier(settings: BookApiSettings) -> Notifier:
    if settings.notifier_backend == "smtp":
        logger.info("Notifier: SMTP via %s:%d", settings.smtp_host, settings.smtp_port)
        return SmtpNotifier.from_settings(settings)
    logger.warning("Notifier: log backend active, emails are NOT delivered")
    return LoggingNotifier()

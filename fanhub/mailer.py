"""Outbound email for account recovery.

Messages are rendered from small built-in templates and sent over SMTP in a
worker thread so the event loop never blocks on the mail server.  Sending is
fire-and-forget: a failure is logged and reported as ``False``, never raised.

When ``FANHUB_SMTP_HOST`` is unset nothing is sent.
"""

from __future__ import annotations

import asyncio
import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

logger = logging.getLogger(__name__)

SMTP_HOST = os.environ.get("FANHUB_SMTP_HOST", "")
SMTP_PORT = int(os.environ.get("FANHUB_SMTP_PORT", "587"))
SMTP_USER = os.environ.get("FANHUB_SMTP_USER", "")
SMTP_PASSWORD = os.environ.get("FANHUB_SMTP_PASSWORD", "")
SMTP_TLS = os.environ.get("FANHUB_SMTP_TLS", "true").lower() in ("1", "true", "yes")
MAIL_FROM = os.environ.get("FANHUB_MAIL_FROM", "FanHub <no-reply@fanhub.local>")


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


# ── Templates ─────────────────────────────────────────────────────

def _otp_body(heading: str, lead: str, name: str, otp: str, minutes: int) -> tuple[str, str]:
    html = f"""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">{heading}</h2>
  <p>Hello {name},</p>
  <p>{lead}</p>
  <div style="background-color: #f4f4f4; padding: 20px; text-align: center; margin: 20px 0;">
    <h1 style="color: #007bff; font-size: 32px; margin: 0; letter-spacing: 5px;">{otp}</h1>
  </div>
  <p>This code expires in {minutes} minutes.</p>
  <p>If you didn't request this, please ignore this email.</p>
</div>
"""
    text = (
        f"Hello {name},\n\n{lead}\n\n    {otp}\n\n"
        f"This code expires in {minutes} minutes.\n"
        "If you didn't request this, please ignore this email.\n"
    )
    return html, text


def forgot_password_email(name: str, otp: str, minutes: int) -> RenderedEmail:
    html, text = _otp_body(
        "Password Reset Request",
        "You requested to reset your password. Use this code to continue:",
        name, otp, minutes,
    )
    return RenderedEmail("Password Reset Code", html, text)


def resend_otp_email(name: str, otp: str, minutes: int) -> RenderedEmail:
    html, text = _otp_body(
        "New Verification Code",
        "Here is your new verification code:",
        name, otp, minutes,
    )
    return RenderedEmail("Your New Verification Code", html, text)


# ── Delivery ──────────────────────────────────────────────────────

class EmailService:
    """Sends rendered emails over SMTP."""

    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        user: str = SMTP_USER,
        password: str = SMTP_PASSWORD,
        use_tls: bool = SMTP_TLS,
        sender: str = MAIL_FROM,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.sender = sender

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _build(self, to: str, email: RenderedEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = email.subject
        msg.set_content(email.text)
        msg.add_alternative(email.html, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(msg)

    async def send(self, to: str, email: RenderedEmail) -> bool:
        if not self.configured:
            logger.info("SMTP not configured; skipping '%s' to %s", email.subject, to)
            return False
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._deliver, self._build(to, email))
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send '%s' to %s", email.subject, to)
            return False
        logger.info("Sent '%s' to %s", email.subject, to)
        return True

    async def send_forgot_password(self, to: str, name: str, otp: str, minutes: int) -> bool:
        return await self.send(to, forgot_password_email(name, otp, minutes))

    async def send_resend_otp(self, to: str, name: str, otp: str, minutes: int) -> bool:
        return await self.send(to, resend_otp_email(name, otp, minutes))


mailer = EmailService()

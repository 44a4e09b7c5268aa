"""Outbound transactional email over SMTP."""

from __future__ import annotations

import logging
import smtplib
import socket
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from helpdesk.config import Settings, settings as app_settings
from helpdesk.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    """Email service for sending transactional emails.

    Supports:
    - SMTP with STARTTLS or implicit SSL
    - Email verification, password reset and OTP messages
    - Logging instead of sending while SMTP still holds the placeholder values

    Every connection uses ``EMAIL_TIMEOUT_SECONDS`` so a stalled mail server
    cannot hold a request open; any SMTP, TLS or timeout failure raises
    ``EmailDeliveryError`` and the caller decides whether it is fatal.
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or app_settings

    @property
    def is_configured(self) -> bool:
        return self.config.mail_configured

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> None:
        if not self.is_configured:
            if self.config.is_production:
                logger.error("Mail transport not configured; cannot send '%s'", subject)
                raise EmailDeliveryError(reason="mail_not_configured")
            # Dev mode: log the email instead of sending
            logger.info(
                "Mail transport not configured; skipped '%s' to %s",
                subject,
                redact_email(to_email),
            )
            return

        cfg = self.config
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = cfg.SMTP_FROM or cfg.SMTP_USER
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if cfg.SMTP_USE_TLS:
                with smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=cfg.EMAIL_TIMEOUT_SECONDS) as server:
                    server.starttls(context=context)
                    if cfg.SMTP_USER and cfg.SMTP_PASSWORD:
                        server.login(cfg.SMTP_USER, cfg.SMTP_PASSWORD)
                    server.sendmail(msg["From"], [to_email], msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    cfg.SMTP_HOST, cfg.SMTP_PORT, context=context, timeout=cfg.EMAIL_TIMEOUT_SECONDS
                ) as server:
                    if cfg.SMTP_USER and cfg.SMTP_PASSWORD:
                        server.login(cfg.SMTP_USER, cfg.SMTP_PASSWORD)
                    server.sendmail(msg["From"], [to_email], msg.as_string())
        except (socket.timeout, TimeoutError) as e:
            logger.error("Email to %s timed out after %ss: %s", redact_email(to_email), cfg.EMAIL_TIMEOUT_SECONDS, e)
            raise EmailDeliveryError(reason="timeout") from e
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "Email to %s failed via %s:%s: %s: %s",
                redact_email(to_email),
                cfg.SMTP_HOST,
                cfg.SMTP_PORT,
                type(e).__name__,
                e,
            )
            raise EmailDeliveryError(reason=type(e).__name__) from e

        logger.info("Email '%s' sent to %s", subject, redact_email(to_email))

    def send_email_verification(self, to_email: str, token: str) -> None:
        verify_url = f"{self.config.PUBLIC_BASE_URL}/api/v1/auth/verify-email?token={token}"
        html_body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Welcome to the IT Support System!</h2>
  <p>Please verify your email address:</p>
  <p><a href="{verify_url}">Verify Email Address</a></p>
  <p>If the link doesn't work, paste this URL into your browser: {verify_url}</p>
  <p>If you didn't create this account, please ignore this email.</p>
</div>
"""
        text_body = (
            "Welcome to the IT Support System!\n\n"
            f"Please verify your email address by visiting:\n{verify_url}\n\n"
            "If you didn't create this account, please ignore this email.\n"
        )
        self.send_email(to_email, "Verify Your Email Address", html_body, text_body)

    def send_password_reset(self, to_email: str, token: str) -> None:
        reset_url = f"{self.config.PUBLIC_BASE_URL}/reset-password?token={token}"
        minutes = self.config.PASSWORD_RESET_EXPIRE_MINUTES
        html_body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Password Reset Request</h2>
  <p>You requested a password reset for your IT Support System account.</p>
  <p><a href="{reset_url}">Reset Password</a></p>
  <p>If the link doesn't work, paste this URL into your browser: {reset_url}</p>
  <p><strong>This link will expire in {minutes} minutes.</strong></p>
  <p>If you didn't request this reset, please ignore this email.</p>
</div>
"""
        text_body = (
            "Password Reset Request\n\n"
            f"Reset your password here:\n{reset_url}\n\n"
            f"This link will expire in {minutes} minutes.\n"
        )
        self.send_email(to_email, "Password Reset Request", html_body, text_body)

    def send_otp(self, to_email: str, code: str) -> None:
        minutes = self.config.OTP_EXPIRE_MINUTES
        text_body = f"Your OTP code is: {code}\nThis code is valid for {minutes} minutes."
        html_body = f"<p>Your OTP code is: <strong>{code}</strong></p><p>This code is valid for {minutes} minutes.</p>"
        self.send_email(to_email, "Your IT Support OTP Code", html_body, text_body)


email_service = EmailService()

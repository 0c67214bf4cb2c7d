"""Email sending service using SMTP (aiosmtplib).

Emails are skipped when SMTP_HOST is not configured: the application works
without email, it just cannot deliver verification or reset links.
"""

import html
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from socialhub.config import Settings
from socialhub.core.exceptions import MailDeliveryError
from socialhub.utils.logging_utils import redact_email

logger = logging.getLogger(__name__)


class EmailService:
    """Thin wrapper around aiosmtplib for sending transactional emails."""

    def __init__(self, smtp_host: Optional[str], smtp_port: int, smtp_username: Optional[str],
                 smtp_password: Optional[str], from_email: str, from_name: str,
                 use_tls: bool, app_base_url: str):
        self._host = smtp_host
        self._port = smtp_port
        self._username = smtp_username or ""
        self._password = smtp_password or ""
        self._from_email = from_email
        self._from_name = from_name
        self._use_tls = use_tls
        self._base_url = app_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailService":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_username=settings.SMTP_USERNAME,
            smtp_password=settings.SMTP_PASSWORD,
            from_email=settings.SMTP_FROM_EMAIL,
            from_name=settings.SMTP_FROM_NAME,
            use_tls=settings.SMTP_USE_TLS,
            app_base_url=settings.APP_BASE_URL,
        )

    @property
    def is_configured(self) -> bool:
        """Return True when SMTP credentials are present."""
        return bool(self._host)

    async def send_email(self, to_email: str, subject: str, html_body: str,
                         text_body: str) -> bool:
        """
        Send an email.

        Returns True when sent and False when SMTP is not configured.

        Raises:
            MailDeliveryError: the SMTP exchange failed
        """
        if not self.is_configured:
            logger.info("Email not configured, skipping send to %s: %s",
                        redact_email(to_email), subject)
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self._from_name} <{self._from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=self._host,
                port=self._port,
                username=self._username or None,
                password=self._password or None,
                use_tls=False,  # SSL on port 465
                start_tls=self._use_tls,  # STARTTLS on port 587 (default)
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", redact_email(to_email), exc)
            raise MailDeliveryError("Failed to send email.") from exc

        logger.info("Email sent to %s: %s", redact_email(to_email), subject)
        return True

    async def send_verification_email(self, to_email: str, token: str,
                                      display_name: str) -> bool:
        """Send a registration verification link."""
        verify_url = f"{self._base_url}/auth/verify-email/{token}"
        greeting = display_name or to_email

        subject = "Registration verification"
        html_body = f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="color: #2D3748;">Confirm your registration</h2>
  <p>Hi {html.escape(greeting)},</p>
  <p>Click <a href="{verify_url}">here</a> to confirm your SocialHub registration.</p>
  <p style="color: #718096; font-size: 14px;">
    This link expires in 1 hour. If you didn't sign up, you can safely ignore it.
  </p>
  <p style="color: #718096; font-size: 12px;">
    Or copy and paste this URL: {verify_url}
  </p>
</body>
</html>"""
        text_body = (
            f"Hi {greeting},\n\n"
            f"Confirm your registration by visiting:\n{verify_url}\n\n"
            f"This link expires in 1 hour.\n\n"
            f"If you didn't sign up, you can safely ignore it."
        )
        return await self.send_email(to_email, subject, html_body, text_body)

    async def send_password_reset_email(self, to_email: str, token: str,
                                        display_name: str) -> bool:
        """Send a password-reset link."""
        reset_url = f"{self._base_url}/auth/reset-password?token={token}"
        greeting = display_name or to_email

        subject = "Reset password"
        html_body = f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="color: #2D3748;">Reset your password</h2>
  <p>Hi {html.escape(greeting)},</p>
  <p>We received a request to reset your SocialHub password.</p>
  <p style="margin: 30px 0;">
    <a href="{reset_url}"
       style="background-color: #E53E3E; color: white; padding: 12px 24px;
              text-decoration: none; border-radius: 6px; display: inline-block;">
      Reset Password
    </a>
  </p>
  <p style="color: #718096; font-size: 14px;">
    This link expires in <strong>1 hour</strong>. If you didn't request a password reset,
    you can safely ignore this email.
  </p>
</body>
</html>"""
        text_body = (
            f"Hi {greeting},\n\n"
            f"Reset your SocialHub password by visiting:\n{reset_url}\n\n"
            f"This link expires in 1 hour.\n\n"
            f"If you didn't request this, you can safely ignore it."
        )
        return await self.send_email(to_email, subject, html_body, text_body)

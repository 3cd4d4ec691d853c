"""Transactional email via SendGrid.

Every send is fire-and-forget: routers schedule these through FastAPI
``BackgroundTasks`` and a delivery failure is logged, never raised.
"""

import html
import logging

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from festive.config import settings

logger = logging.getLogger(__name__)


def _greeting(name: str | None) -> str:
    return f"Hi {html.escape(name)}," if name else "Hi,"


class EmailService:
    """Service for sending account emails via SendGrid."""

    @staticmethod
    def _send_email(to_email: str, subject: str, html_content: str) -> bool:
        """Send email via SendGrid. Returns True if successful."""
        if not settings.sendgrid_api_key:
            logger.warning("SendGrid API key not configured, skipping email send")
            return False

        message = Mail(
            from_email=(settings.email_from_address, settings.email_from_name),
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
        )

        try:
            response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
        except Exception:
            # Delivery must never fail the originating request
            logger.exception(f"Failed to send '{subject}' email")
            return False

        logger.info(f"Email '{subject}' sent, status: {response.status_code}")
        return response.status_code in (200, 201, 202)

    @classmethod
    def send_verification_email(cls, email: str, token: str, name: str | None = None) -> bool:
        """Send the email verification link."""
        verify_url = f"{settings.frontend_url}/verify-email?token={token}"
        html_content = f"""
        <p>{_greeting(name)}</p>
        <h2>Confirm your email</h2>
        <p>Click the link below to activate your Festive account:</p>
        <p><a href="{verify_url}">{verify_url}</a></p>
        <p>This link expires in {settings.email_verification_expire_hours} hours.</p>
        <p>If you didn't create an account, you can ignore this email.</p>
        """
        return cls._send_email(email, "Confirm your email - Festive", html_content)

    @classmethod
    def send_password_reset_email(cls, email: str, token: str, name: str | None = None) -> bool:
        """Send the password reset link."""
        reset_url = f"{settings.frontend_url}/reset-password?token={token}"
        html_content = f"""
        <p>{_greeting(name)}</p>
        <h2>Reset your password</h2>
        <p>Click the link below to choose a new password:</p>
        <p><a href="{reset_url}">{reset_url}</a></p>
        <p>This link expires in {settings.password_reset_expire_hours} hour(s).</p>
        <p>If you didn't request this, you can ignore this email.</p>
        """
        return cls._send_email(email, "Reset your password - Festive", html_content)

    @classmethod
    def send_password_changed_notification(cls, email: str) -> bool:
        html_content = """
        <h2>Password changed</h2>
        <p>Your Festive password was just changed.</p>
        <p>If you didn't make this change, reset your password immediately.</p>
        """
        return cls._send_email(email, "Your password was changed - Festive", html_content)

    @classmethod
    def send_two_factor_disabled_notification(cls, email: str) -> bool:
        html_content = """
        <h2>Two-factor authentication disabled</h2>
        <p>Two-factor authentication has been turned off on your Festive account.</p>
        <p>If you didn't make this change, reset your password immediately.</p>
        """
        return cls._send_email(email, "Two-factor authentication disabled - Festive", html_content)

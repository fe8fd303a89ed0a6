import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from jinja2 import Template

from .config import Settings

logger = logging.getLogger(__name__)


# Email templates
EMAIL_VERIFICATION_TEMPLATE = """
<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #f8f9fa; padding: 30px; border-radius: 10px;">
        <h2 style="color: #1f2937; margin-bottom: 20px; text-align: center;">
            Email verification
        </h2>

        <p style="color: #4b5563; font-size: 16px; line-height: 1.6;">
            Enter this code to finish signing in to {{ app_name }}:
        </p>

        <div style="text-align: center; margin: 30px 0;">
            <h1 style="font-size: 32px; letter-spacing: 6px; background-color: #f5f5f5;
                       padding: 12px; border-radius: 4px;">{{ code }}</h1>
        </div>

        {% if expires_minutes %}
        <p style="color: #6b7280; font-size: 14px; line-height: 1.6;">
            The code expires in {{ expires_minutes }} minutes. A new sign-in attempt
            replaces it with a new code.
        </p>
        {% endif %}

        <p style="color: #6b7280; font-size: 14px; line-height: 1.6;">
            If you didn't try to sign in, you can safely ignore this email.
        </p>

        <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">

        <p style="color: #9ca3af; font-size: 12px; text-align: center;">
            © {{ current_year }} {{ app_name }}. All rights reserved.
        </p>
    </div>
</body>
</html>
"""


def build_connection_config(settings: Settings) -> ConnectionConfig:
    """SMTP connection settings for fastapi-mail."""
    return ConnectionConfig(
        MAIL_USERNAME=settings.MAIL_USER,
        MAIL_PASSWORD=settings.MAIL_PASSWORD,
        MAIL_FROM=settings.MAIL_FROM,
        MAIL_PORT=settings.MAIL_PORT,
        MAIL_SERVER=settings.MAIL_HOST,
        MAIL_FROM_NAME=settings.MAIL_FROM_NAME,
        MAIL_STARTTLS=not settings.MAIL_SECURE,
        MAIL_SSL_TLS=settings.MAIL_SECURE,
        USE_CREDENTIALS=bool(settings.MAIL_USER),
        VALIDATE_CERTS=True,
        TIMEOUT=settings.MAIL_TIMEOUT,
    )


def render_verification_email(
    code: str, app_name: str, expires_minutes: Optional[int] = None
) -> str:
    """Generate HTML email body carrying the verification code."""
    template = Template(EMAIL_VERIFICATION_TEMPLATE)
    return template.render(
        code=code,
        app_name=app_name,
        expires_minutes=expires_minutes,
        current_year=datetime.now(timezone.utc).year,
    )


class VerificationMailer:
    """Sends one-time verification codes by email.

    Delivery is fire-and-forget: failures are logged, never raised, so a
    broken mail transport cannot fail a login.
    """

    def __init__(self, settings: Settings, fastmail: Optional[FastMail] = None):
        self.settings = settings
        self.fastmail = fastmail or FastMail(build_connection_config(settings))

    async def send_verification_code(self, email: str, code: str) -> None:
        """Send the verification code to ``email``."""
        try:
            html = render_verification_email(
                code,
                app_name=self.settings.MAIL_FROM_NAME,
                expires_minutes=self.settings.EMAIL_VERIFICATION_EXPIRE_MINUTES or None,
            )
            message = MessageSchema(
                subject="Email verification",
                recipients=[email],
                body=html,
                subtype=MessageType.html,
            )
            await self.fastmail.send_message(message)
            logger.info(f"Verification email sent successfully to {email}")
        except Exception as e:
            logger.error(f"Failed to send verification email to {email}: {e}")

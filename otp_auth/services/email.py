"""SMTP email sender used for OTP codes and account notices."""

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import anyio

from otp_auth.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MailMessage:
    first_name: str
    email: str
    subject: str
    html_body: str


def render_email(first_name: str, html_body: str) -> str:
    """Wrap a body fragment in the shared greeting layout."""
    return f"""
    <div>
        <p>Hi {first_name},</p>
        {html_body}
        <p>If you did not request this, you can safely ignore this email.</p>
    </div>
    """


def render_otp_body(message: str, code: int) -> str:
    return (
        f"<p>{message}:</p>"
        f'<h3 style="color: #2563eb; font-size: 24px; text-align: center;">{code:0{settings.OTP_LENGTH}d}</h3>'
        f"<p>The code expires in {settings.OTP_EXPIRE_SECONDS} seconds.</p>"
    )


class Mailer:
    """Best-effort delivery: failures are logged and reported, never raised."""

    def _is_configured(self) -> bool:
        return all([settings.SMTP_SERVER, settings.SMTP_USERNAME, settings.SMTP_PASSWORD, settings.FROM_EMAIL])

    async def send(self, message: MailMessage) -> bool:
        """Send `message` over SMTP in a worker thread; True when delivered."""

        if not self._is_configured():
            if settings.ENVIRONMENT == "development":
                logger.info("[dev mail] to=%s subject=%s body=%s", message.email, message.subject, message.html_body)
                return True
            logger.warning("SMTP settings are incomplete; dropping mail to %s", message.email)
            return False

        def _send() -> None:
            """Inner sync function executed in a thread."""
            mime = MIMEMultipart()
            mime["From"] = settings.FROM_EMAIL
            mime["To"] = message.email
            mime["Subject"] = message.subject
            mime.attach(MIMEText(render_email(message.first_name, message.html_body), "html"))

            with smtplib.SMTP(settings.SMTP_SERVER, int(settings.SMTP_PORT), timeout=20) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.send_message(mime)

        try:
            await anyio.to_thread.run_sync(_send)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send mail %r to %s: %s", message.subject, message.email, exc)
            return False
        logger.info("Sent mail %r to %s", message.subject, message.email)
        return True

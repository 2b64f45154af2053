import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from . import config

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def is_configured() -> bool:
    return bool(config.SMTP_EMAIL and config.SMTP_PASSWORD)


def build_message(to: str, subject: str, html: str, text: Optional[str] = None) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.REPORT_FROM_EMAIL or config.SMTP_EMAIL or ""
    msg["To"] = to

    # Plain text first so clients prefer the HTML part
    if text:
        msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(html, "html"))
    return msg


def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """Send an HTML email over SMTP SSL, raising EmailDeliveryError on any failure."""
    if not is_configured():
        raise EmailDeliveryError("Missing SMTP_EMAIL or SMTP_PASSWORD.")

    msg = build_message(to, subject, html, text)
    try:
        with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT) as server:
            server.login(config.SMTP_EMAIL, config.SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"❌ Email to {to} failed: {e}")
        raise EmailDeliveryError(str(e), status_code=502)

    logger.info(f"✅ Email sent to {to}: {subject}")

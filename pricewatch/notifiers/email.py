"""Price-drop alerts by email."""

import logging
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from pricewatch.config import SITE_NAME
from pricewatch.models import Alert

logger = logging.getLogger(__name__)

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587


def _render(alert: Alert) -> tuple[str, str]:
    subject = f"[pricewatch] {alert.name[:50]}"
    body = "\n".join([
        f"{SITE_NAME} price alert",
        "",
        alert.message,
        "",
        f"Item: {alert.name}",
        f"SKU: {alert.sku}",
        f"Seen at: {alert.time:%Y-%m-%d %H:%M} UTC",
    ])
    return subject, body


def send_email_alert(alert: Alert) -> bool:
    """
    Mail one alert over STARTTLS.

    Needs SMTP_USER and SMTP_PASS; SMTP_TO falls back to SMTP_USER.
    SMTP_HOST / SMTP_PORT default to Gmail.
    """
    user = os.environ.get("SMTP_USER")
    password = os.environ.get("SMTP_PASS")
    if not user or not password:
        logger.debug("Email skipped: no SMTP credentials")
        return False

    recipient = os.environ.get("SMTP_TO") or user
    host = os.environ.get("SMTP_HOST", DEFAULT_SMTP_HOST)
    port = int(os.environ.get("SMTP_PORT", DEFAULT_SMTP_PORT))

    subject, body = _render(alert)
    msg = MIMEMultipart()
    msg["From"] = user
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain", "utf-8"))

    try:
        with smtplib.SMTP(host, port, timeout=15) as server:
            server.starttls()
            server.login(user, password)
            server.sendmail(user, [recipient], msg.as_string())
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP login rejected for %s: %s", user, e)
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Could not mail alert %s: %s", alert.id, e)
        return False

    logger.info("Alert %s mailed to %s", alert.id, recipient)
    return True

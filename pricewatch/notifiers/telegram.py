"""Price-drop alerts through a Telegram bot."""

import html
import logging
import os

import requests

from pricewatch.models import Alert

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"
SEND_TIMEOUT_SECONDS = 10


def _format(alert: Alert) -> str:
    return (
        f"🔔 <b>{html.escape(alert.name[:80])}</b>\n"
        f"{html.escape(alert.message)}\n"
        f"<i>SKU {html.escape(alert.sku)}</i>"
    )


def send_telegram_alert(alert: Alert) -> bool:
    """Post one alert to TELEGRAM_CHAT_ID. Skipped unless both bot variables are set."""
    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    chat_id = os.environ.get("TELEGRAM_CHAT_ID")
    if not (token and chat_id):
        logger.debug("Telegram skipped: bot token or chat id missing")
        return False

    try:
        resp = requests.post(
            TELEGRAM_API.format(token=token),
            json={
                "chat_id": chat_id,
                "text": _format(alert),
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
            timeout=SEND_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        logger.error("Telegram rejected alert %s: %s", alert.id, e.response.text if e.response is not None else e)
        return False
    except requests.exceptions.RequestException as e:
        logger.error("Telegram unreachable: %s", e)
        return False

    logger.info("Alert %s sent to Telegram", alert.id)
    return True

"""In-memory alert log and push fan-out."""

import logging
from collections import deque

from pricewatch.models import Alert, AlertType
from pricewatch.notifiers.email import send_email_alert
from pricewatch.notifiers.telegram import send_telegram_alert

logger = logging.getLogger(__name__)


class AlertLog:
    """Most recent alerts, newest first."""

    def __init__(self, maxlen: int = 10):
        self._alerts: deque[Alert] = deque(maxlen=maxlen)

    def __call__(self, alert: Alert) -> None:
        self._alerts.appendleft(alert)

    def __len__(self) -> int:
        return len(self._alerts)

    @property
    def alerts(self) -> list[Alert]:
        return list(self._alerts)

    def clear(self) -> None:
        self._alerts.clear()


def push_alert(alert: Alert) -> None:
    """Forward price-drop alerts to Telegram and email; other types stay local."""
    if alert.type != AlertType.ALERT:
        return
    if send_email_alert(alert):
        logger.info("✉️  Email sent")
    if send_telegram_alert(alert):
        logger.info("📱 Telegram sent")

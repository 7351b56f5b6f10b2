"""Alert sinks."""

from pricewatch.notifiers.email import send_email_alert
from pricewatch.notifiers.log import AlertLog, push_alert
from pricewatch.notifiers.telegram import send_telegram_alert

__all__ = ["AlertLog", "push_alert", "send_email_alert", "send_telegram_alert"]

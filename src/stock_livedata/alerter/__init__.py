"""Alerting layer - Notification formatting and delivery."""

from stock_livedata.alerter.formatter import AlertFormatter, FormattedAlert
from stock_livedata.alerter.notifier import (
    LogNotificationSink,
    NotificationDispatcher,
    NotificationSink,
    WebhookNotificationSink,
    build_sink,
)

__all__ = [
    "AlertFormatter",
    "FormattedAlert",
    "LogNotificationSink",
    "NotificationDispatcher",
    "NotificationSink",
    "WebhookNotificationSink",
    "build_sink",
]

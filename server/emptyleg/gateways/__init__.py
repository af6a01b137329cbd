"""Messaging gateways used to notify clients."""

from ..core.config import Settings
from .notification import (
    LoggingNotificationGateway,
    NotificationDeliveryError,
    NotificationGateway,
    WebhookNotificationGateway,
)


def build_notification_gateway(settings: Settings) -> NotificationGateway:
    """Create the gateway selected by ``notification_gateway``."""
    if settings.notification_gateway == "webhook":
        if not settings.notification_webhook_url:
            raise ValueError("notification_webhook_url is required for the webhook gateway")
        return WebhookNotificationGateway(
            url=settings.notification_webhook_url,
            sender=settings.notification_sender,
        )
    return LoggingNotificationGateway()


__all__ = [
    "LoggingNotificationGateway",
    "NotificationDeliveryError",
    "NotificationGateway",
    "WebhookNotificationGateway",
    "build_notification_gateway",
]

"""Notification type descriptors."""

from fanout_service.features.notifications.types.base import EventData, NotificationType, TypeContext
from fanout_service.features.notifications.types.quote import QuoteNotification
from fanout_service.features.notifications.types.reply import ReplyNotification

__all__ = [
    "EventData",
    "NotificationType",
    "QuoteNotification",
    "ReplyNotification",
    "TypeContext",
]

"""Notification fan-out and delivery dispatch.

An event on a tracked item (a reply, a quote, ...) is turned into one
notification row per recipient and handed to the recipient's delivery
channels in one batch per channel.

Architecture:
    - Types: one descriptor per item type, held in the type registry
    - Dispatch: NotificationManager resolves recipients, dedups against
      earlier rows, inserts, then flushes channel queues after commit
    - Channels: ChannelSender implementations (email, websocket) fed by
      per-dispatch ChannelQueues
    - Read path: NotificationLoader pages through a user's notifications
      and batch-loads the users and auxiliary data needed to render them

Example:
    ```python
    manager = NotificationManager(sessionmaker, senders=[EmailChannelSender(transport)])

    with acting_user(7):
        await manager.add_subscription("reply", topic_id, channel="email")

    with acting_user(9):
        result = await manager.add_notification(
            "reply",
            {"post_id": 120, "topic_id": topic_id, "poster_id": 9, "topic_title": "Hello"},
        )

    with acting_user(7):
        page = await manager.load(LoadOptions(limit=10))
        for notification in page:
            print(page.render(notification).title)
    ```
"""

from fanout_service.features.notifications.channels import (
    ChannelQueues,
    ChannelSender,
    DeliveryItem,
    DeliveryResult,
    EmailChannelSender,
    WebSocketChannelSender,
)
from fanout_service.features.notifications.context import (
    ActingUser,
    acting_user,
    get_acting_user,
    set_acting_user,
)
from fanout_service.features.notifications.dedup import DedupFilter
from fanout_service.features.notifications.loader import NotificationLoader
from fanout_service.features.notifications.locks import KeyedLock
from fanout_service.features.notifications.models import (
    NO_CHANNEL,
    Notification,
    NotificationSubscription,
    Recipient,
)
from fanout_service.features.notifications.recipients import RecipientCache
from fanout_service.features.notifications.registry import (
    NotificationTypeRegistry,
    get_notification_type_registry,
)
from fanout_service.features.notifications.rendering import MessageRenderer, RenderedMessage
from fanout_service.features.notifications.repository import (
    NotificationRepository,
    RecipientRepository,
    SubscriptionRepository,
)
from fanout_service.features.notifications.schemas import (
    DispatchResult,
    FlushReport,
    LoadedNotifications,
    LoadOptions,
)
from fanout_service.features.notifications.service import (
    NotificationManager,
    get_notification_manager,
)
from fanout_service.features.notifications.types import (
    NotificationType,
    QuoteNotification,
    ReplyNotification,
    TypeContext,
)

__all__ = [
    "NO_CHANNEL",
    "ActingUser",
    "ChannelQueues",
    "ChannelSender",
    "DedupFilter",
    "DeliveryItem",
    "DeliveryResult",
    "DispatchResult",
    "EmailChannelSender",
    "FlushReport",
    "KeyedLock",
    "LoadOptions",
    "LoadedNotifications",
    "MessageRenderer",
    "Notification",
    "NotificationLoader",
    "NotificationManager",
    "NotificationRepository",
    "NotificationSubscription",
    "NotificationType",
    "NotificationTypeRegistry",
    "QuoteNotification",
    "Recipient",
    "RecipientCache",
    "RecipientRepository",
    "ReplyNotification",
    "RenderedMessage",
    "SubscriptionRepository",
    "TypeContext",
    "WebSocketChannelSender",
    "acting_user",
    "get_acting_user",
    "get_notification_manager",
    "get_notification_type_registry",
    "set_acting_user",
]

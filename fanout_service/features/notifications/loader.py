"""Read path: page through a user's notifications with render data attached."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from fanout_service.core.database.session import transaction
from fanout_service.core.exceptions import UnknownTypeError
from fanout_service.core.services import BaseService
from fanout_service.core.settings import get_notification_settings
from fanout_service.features.notifications.context import ActingUser, get_acting_user
from fanout_service.features.notifications.recipients import RecipientCache
from fanout_service.features.notifications.registry import get_notification_type_registry
from fanout_service.features.notifications.repository import (
    get_notification_repository,
    get_recipient_repository,
    get_subscription_repository,
)
from fanout_service.features.notifications.schemas import LoadedNotifications, LoadOptions
from fanout_service.features.notifications.types.base import TypeContext

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from fanout_service.core.settings import NotificationSettings
    from fanout_service.features.notifications.models import Notification
    from fanout_service.features.notifications.registry import NotificationTypeRegistry
    from fanout_service.features.notifications.repository import (
        NotificationRepository,
        RecipientRepository,
        SubscriptionRepository,
    )
    from fanout_service.features.notifications.types.base import NotificationType


class NotificationLoader(BaseService):
    """Loads one page of notifications and the data needed to render it.

    Per page: one primary read (plus its count), one batched recipient read
    for the union of every row's ``users_to_query``, and one
    ``load_special`` call per type that declared keys.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        registry: NotificationTypeRegistry | None = None,
        notifications: NotificationRepository | None = None,
        subscriptions: SubscriptionRepository | None = None,
        recipients: RecipientRepository | None = None,
        settings: NotificationSettings | None = None,
        acting_user_provider: Callable[[], ActingUser] = get_acting_user,
    ) -> None:
        super().__init__()
        self._sessionmaker = sessionmaker
        self._registry = registry or get_notification_type_registry()
        self._notifications = notifications or get_notification_repository()
        self._subscriptions = subscriptions or get_subscription_repository()
        self._recipients = recipients or get_recipient_repository()
        self._settings = settings or get_notification_settings()
        self._acting_user = acting_user_provider

    async def load(self, options: LoadOptions | None = None) -> LoadedNotifications:
        """Load a page of notifications.

        Rows whose stored type is no longer registered are skipped with a
        warning; ``total`` still counts them.
        """
        options = options or LoadOptions()
        actor = self._acting_user()
        recipient_id = options.recipient_id if options.recipient_id is not None else actor.user_id
        limit = min(options.limit or self._settings.default_load_limit, self._settings.max_load_limit)

        async with transaction(self._sessionmaker, "load_notifications") as session:
            page = await self._notifications.select_for_recipient(
                session,
                recipient_id,
                order_by=options.order_by,
                order_dir=options.order_dir,
                limit=limit,
                offset=options.start,
                unread_only=options.unread_only,
            )

            items: list[Notification] = []
            types: dict[str, NotificationType] = {}
            groups: dict[str, tuple[NotificationType, list[Notification]]] = {}
            for notification in page.items:
                descriptor = self._descriptor_for(notification, types)
                if descriptor is None:
                    continue
                items.append(notification)
                groups.setdefault(descriptor.type_id, (descriptor, []))[1].append(notification)

            cache = RecipientCache(self._recipients, session)
            await cache.ensure_loaded(
                user_id
                for notification in items
                for user_id in types[notification.item_type].users_to_query(notification)
            )

            ctx = TypeContext(
                session=session,
                actor=actor,
                settings=self._settings,
                notifications=self._notifications,
                subscriptions=self._subscriptions,
            )
            special: dict[str, dict] = {}
            for type_id, (descriptor, notifications) in groups.items():
                keys = {key for notification in notifications for key in descriptor.special_keys(notification)}
                if keys:
                    special[type_id] = dict(await descriptor.load_special(ctx, keys, notifications))

        self._lazy.debug(
            lambda: f"Loaded {len(items)}/{page.total} notifications for recipient {recipient_id} "
            f"(start={options.start}, limit={limit}, types={sorted(groups)})"
        )
        return LoadedNotifications(
            items=items,
            total=page.total,
            recipients=cache,
            special=special,
            types=types,
            start=options.start,
            limit=limit,
        )

    def _descriptor_for(
        self,
        notification: Notification,
        resolved: dict[str, NotificationType],
    ) -> NotificationType | None:
        stored_type = notification.item_type
        if stored_type in resolved:
            return resolved[stored_type]
        try:
            descriptor = self._registry.resolve(stored_type, trusted=False)
        except UnknownTypeError:
            self.logger.warning(
                "Skipping notification of unregistered type",
                extra={"notification_id": notification.id, "item_type": stored_type},
            )
            return None
        resolved[stored_type] = descriptor
        return descriptor

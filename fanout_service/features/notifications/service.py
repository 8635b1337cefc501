"""Dispatch engine: fan an event out to notification rows and channels."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fanout_service.core.database.session import get_sessionmaker, transaction
from fanout_service.core.services import BaseService
from fanout_service.core.settings import get_notification_settings
from fanout_service.features.notifications.channels.base import DeliveryItem
from fanout_service.features.notifications.channels.queue import ChannelQueues
from fanout_service.features.notifications.context import ActingUser, get_acting_user
from fanout_service.features.notifications.dedup import DedupFilter
from fanout_service.features.notifications.loader import NotificationLoader
from fanout_service.features.notifications.locks import KeyedLock
from fanout_service.features.notifications.metrics import (
    notification_created_total,
    notification_deduplicated_total,
)
from fanout_service.features.notifications.models import NO_CHANNEL, Notification
from fanout_service.features.notifications.recipients import RecipientCache
from fanout_service.features.notifications.registry import get_notification_type_registry
from fanout_service.features.notifications.repository import (
    get_notification_repository,
    get_recipient_repository,
    get_subscription_repository,
)
from fanout_service.features.notifications.schemas import DispatchResult, FlushReport
from fanout_service.features.notifications.types.base import TypeContext
from fanout_service.infra.logging import log_context

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from fanout_service.core.settings import NotificationSettings
    from fanout_service.features.notifications.channels.base import ChannelSender
    from fanout_service.features.notifications.registry import NotificationTypeRegistry
    from fanout_service.features.notifications.repository import (
        NotificationRepository,
        RecipientRepository,
        SubscriptionRepository,
    )
    from fanout_service.features.notifications.schemas import LoadedNotifications, LoadOptions
    from fanout_service.features.notifications.types.base import EventData, NotificationType


@dataclass(slots=True)
class _Pending:
    """Rows committed by one dispatch that still have to be delivered."""

    descriptor: NotificationType
    queues: ChannelQueues
    recipients: RecipientCache


class NotificationManager(BaseService):
    """Creates, updates and deletes notifications and hands new ones to channels.

    Every write operation runs in one transaction. Dispatches for the same
    (type, item) additionally hold a per-item lock for the whole
    read-dedup-insert sequence; the unique constraint on notification rows
    covers writers in other processes. Channel queues flush only after the
    transaction has committed, so a sender never sees a row that could
    still roll back, and a sender failure never removes one.

    Example:
        manager = NotificationManager(sessionmaker, senders=[EmailChannelSender(smtp)])
        with acting_user(7):
            result = await manager.add_notification("reply", {"post_id": 10, "topic_id": 3, "poster_id": 7})
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        registry: NotificationTypeRegistry | None = None,
        senders: Iterable[ChannelSender] | Mapping[str, ChannelSender] | None = None,
        notifications: NotificationRepository | None = None,
        subscriptions: SubscriptionRepository | None = None,
        recipients: RecipientRepository | None = None,
        settings: NotificationSettings | None = None,
        acting_user_provider: Callable[[], ActingUser] = get_acting_user,
        locks: KeyedLock | None = None,
    ) -> None:
        super().__init__()
        self._sessionmaker = sessionmaker
        self._registry = registry or get_notification_type_registry()
        self._notifications = notifications or get_notification_repository()
        self._subscriptions = subscriptions or get_subscription_repository()
        self._recipients = recipients or get_recipient_repository()
        self._settings = settings or get_notification_settings()
        self._acting_user = acting_user_provider
        self._locks = locks or KeyedLock()
        self._dedup = DedupFilter(self._notifications)
        self._senders: dict[str, ChannelSender] = {}

        if isinstance(senders, Mapping):
            for channel, sender in senders.items():
                self.register_sender(sender, channel=channel)
        else:
            for sender in senders or ():
                self.register_sender(sender)

        self.loader = NotificationLoader(
            sessionmaker,
            registry=self._registry,
            notifications=self._notifications,
            subscriptions=self._subscriptions,
            recipients=self._recipients,
            settings=self._settings,
            acting_user_provider=acting_user_provider,
        )

    # ------------------------------------------------------------------
    # Senders
    # ------------------------------------------------------------------

    def register_sender(self, sender: ChannelSender, *, channel: str | None = None) -> None:
        """Route a channel tag to a sender.

        Raises:
            ValueError: The tag is ``none`` or already has a sender.
        """
        channel = channel or sender.channel
        if channel == NO_CHANNEL:
            raise ValueError(f"Channel {NO_CHANNEL!r} is record-only and cannot have a sender")
        if channel in self._senders:
            raise ValueError(f"A sender is already registered for channel {channel!r}")
        self._senders[channel] = sender
        self.logger.debug("Registered channel sender %s", channel)

    @property
    def channels(self) -> list[str]:
        """Channel tags with a sender, in registration order."""
        return list(self._senders)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def add_notification(self, type_id: str, data: EventData) -> DispatchResult:
        """Refresh existing rows for the event's item, then notify new recipients.

        The type's update hook runs first; when it returns False the type
        has handled the event itself and nothing else happens.

        Raises:
            UnknownTypeError: ``type_id`` is not registered.
            StorageError: The store failed; nothing was written or sent.
        """
        descriptor = self._registry.resolve(type_id)
        item_id = descriptor.get_item_id(data)
        actor = self._acting_user()

        with log_context(item_type=type_id, item_id=item_id):
            async with self._locks.acquire((type_id, item_id)):
                async with transaction(self._sessionmaker, "add_notification") as session:
                    ctx = self._type_context(session, actor)
                    if not await self._update(ctx, descriptor, type_id, item_id, data):
                        self.logger.info("Notification handled by type update hook")
                        return DispatchResult(item_type=type_id, item_id=item_id, handled_by_type=True)

                    candidates = await descriptor.find_recipients(ctx, data)
                    result, pending = await self._persist(ctx, descriptor, type_id, item_id, data, candidates)

            result.flush = await self._deliver(pending)
            self._log_dispatch(result)
            return result

    async def add_notifications_for_users(
        self,
        type_id: str,
        data: EventData,
        recipients: Mapping[int, Iterable[str]],
    ) -> DispatchResult:
        """Notify the given recipients through their channel tags.

        The anonymous sentinel and the acting user are dropped, as is
        anyone already notified about the item. Calling this again for the
        same item only reaches recipients that were not notified before.
        """
        descriptor = self._registry.resolve(type_id)
        item_id = descriptor.get_item_id(data)
        actor = self._acting_user()
        candidates = {int(recipient_id): set(tags) for recipient_id, tags in recipients.items()}

        with log_context(item_type=type_id, item_id=item_id):
            async with self._locks.acquire((type_id, item_id)):
                async with transaction(self._sessionmaker, "add_notifications_for_users") as session:
                    ctx = self._type_context(session, actor)
                    result, pending = await self._persist(ctx, descriptor, type_id, item_id, data, candidates)

            result.flush = await self._deliver(pending)
            self._log_dispatch(result)
            return result

    async def update_notifications(self, type_id: str, data: EventData) -> bool:
        """Apply the type's update to every existing row for the event's item.

        Returns:
            False when the type's update hook handled the event and the
            default payload update did not run
        """
        descriptor = self._registry.resolve(type_id)
        item_id = descriptor.get_item_id(data)

        with log_context(item_type=type_id, item_id=item_id):
            async with self._locks.acquire((type_id, item_id)):
                async with transaction(self._sessionmaker, "update_notifications") as session:
                    ctx = self._type_context(session, self._acting_user())
                    return await self._update(ctx, descriptor, type_id, item_id, data)

    async def delete_notifications(self, type_id: str, item_ids: int | Iterable[int]) -> int:
        """Delete every row of a type for one or more items.

        Deleting items that have no rows is a no-op.

        Returns:
            Number of rows deleted
        """
        self._registry.resolve(type_id)
        async with transaction(self._sessionmaker, "delete_notifications") as session:
            deleted = await self._notifications.delete(session, type_id, item_ids)

        self._lazy.debug(lambda: f"delete_notifications({type_id=}) -> {deleted}")
        return deleted

    async def add_subscription(self, type_id: str, item_id: int, channel: str = NO_CHANNEL) -> bool:
        """Subscribe the acting user to an item through a channel.

        Returns:
            True if the subscription is new
        """
        self._registry.resolve(type_id)
        user_id = self._acting_user().user_id
        async with transaction(self._sessionmaker, "add_subscription") as session:
            created = await self._subscriptions.add(session, type_id, item_id, user_id, channel)

        self._lazy.debug(lambda: f"add_subscription({type_id=}, {item_id=}, {user_id=}, {channel=}) -> {created}")
        return created

    async def remove_subscription(self, type_id: str, item_id: int, channel: str | None = None) -> int:
        """Remove the acting user's subscription (every channel when ``channel`` is None)."""
        self._registry.resolve(type_id)
        user_id = self._acting_user().user_id
        async with transaction(self._sessionmaker, "remove_subscription") as session:
            return await self._subscriptions.remove(session, type_id, item_id, user_id, channel)

    async def mark_read(
        self,
        notification_ids: Iterable[int] | None = None,
        *,
        recipient_id: int | None = None,
    ) -> int:
        """Mark notifications read for a recipient (the acting user by default).

        Returns:
            Number of notifications that changed from unread to read
        """
        recipient_id = recipient_id if recipient_id is not None else self._acting_user().user_id
        async with transaction(self._sessionmaker, "mark_read") as session:
            return await self._notifications.mark_read(session, recipient_id, notification_ids)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def load(self, options: LoadOptions | None = None) -> LoadedNotifications:
        """Load a page of notifications; see ``NotificationLoader.load``."""
        return await self.loader.load(options)

    async def unread_count(self, recipient_id: int | None = None) -> int:
        recipient_id = recipient_id if recipient_id is not None else self._acting_user().user_id
        async with transaction(self._sessionmaker, "unread_count") as session:
            return await self._notifications.count_for_recipient(session, recipient_id, unread_only=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _type_context(self, session: AsyncSession, actor: ActingUser) -> TypeContext:
        return TypeContext(
            session=session,
            actor=actor,
            settings=self._settings,
            notifications=self._notifications,
            subscriptions=self._subscriptions,
        )

    async def _update(
        self,
        ctx: TypeContext,
        descriptor: NotificationType,
        type_id: str,
        item_id: int,
        data: EventData,
    ) -> bool:
        if not await descriptor.update_notifications(ctx, data):
            return False

        fields = descriptor.build_update_payload(data)
        if fields:
            updated = await self._notifications.update_payload(ctx.session, type_id, item_id, fields)
            self._lazy.debug(lambda: f"Updated {updated} existing notification(s) for {type_id}:{item_id}")
        return True

    async def _persist(
        self,
        ctx: TypeContext,
        descriptor: NotificationType,
        type_id: str,
        item_id: int,
        data: EventData,
        candidates: Mapping[int, set[str]],
    ) -> tuple[DispatchResult, _Pending | None]:
        """Dedup, insert and queue; runs inside the caller's lock and transaction."""
        result = DispatchResult(item_type=type_id, item_id=item_id)

        never_notified = {ctx.actor.anonymous_id, ctx.actor.user_id}
        eligible = {rid: tags for rid, tags in candidates.items() if rid not in never_notified}
        result.excluded = len(candidates) - len(eligible)

        fresh = await self._dedup.filter(ctx.session, type_id, item_id, eligible)
        result.deduplicated = len(eligible) - len(fresh)
        if not fresh:
            self._count(type_id, created=0, deduplicated=result.deduplicated)
            return result, None

        now = datetime.now(UTC)
        payloads: dict[int, dict[str, Any]] = {}
        rows = []
        for recipient_id in sorted(fresh):
            payloads[recipient_id] = descriptor.build_insert_payload(data, recipient_id)
            rows.append(
                {
                    "item_type": type_id,
                    "item_id": item_id,
                    "recipient_id": recipient_id,
                    "payload": payloads[recipient_id],
                    "read": False,
                    "created_at": now,
                    "updated_at": now,
                }
            )

        inserted = {row.recipient_id: row.id for row in await self._notifications.batch_insert(ctx.session, rows)}
        # Rows missing from the insert result lost a race on the unique constraint
        conflicts = len(fresh) - len(inserted)
        result.deduplicated += conflicts

        queues = ChannelQueues(metrics_enabled=self._settings.metrics_enabled)
        for recipient_id in sorted(inserted):
            notification = Notification(
                id=inserted[recipient_id],
                item_type=type_id,
                item_id=item_id,
                recipient_id=recipient_id,
                payload=payloads[recipient_id],
                read=False,
                read_at=None,
                created_at=now,
                updated_at=now,
            )
            result.notified.append(recipient_id)
            for channel in self._channel_order(fresh[recipient_id]):
                queues.enqueue(channel, notification)

        cache = RecipientCache(self._recipients, ctx.session)
        await cache.ensure_loaded(
            queues.recipient_ids()
            | {
                user_id
                for channel in queues.channels()
                for notification in queues.pending(channel)
                for user_id in descriptor.users_to_query(notification)
            }
        )

        self._count(type_id, created=len(inserted), deduplicated=result.deduplicated)
        if conflicts:
            self.logger.info(
                "Skipped rows already written by a concurrent dispatch",
                extra={"conflicts": conflicts},
            )
        return result, _Pending(descriptor=descriptor, queues=queues, recipients=cache)

    def _channel_order(self, tags: set[str]) -> list[str]:
        """Tags with a registered sender first, in registration order, then the rest sorted."""
        registered = [channel for channel in self._senders if channel in tags]
        return registered + sorted(tags.difference(registered))

    async def _deliver(self, pending: _Pending | None) -> FlushReport:
        if pending is None or not pending.queues:
            return FlushReport()

        descriptor = pending.descriptor
        cache = pending.recipients

        def build_item(notification: Notification) -> DeliveryItem:
            return DeliveryItem(
                notification=notification,
                recipient=cache.get_or_none(notification.recipient_id),
                message=descriptor.render(notification, cache),
            )

        return await pending.queues.flush_all(self._senders, build_item)

    def _count(self, type_id: str, *, created: int, deduplicated: int) -> None:
        if not self._settings.metrics_enabled:
            return
        if created:
            notification_created_total.labels(item_type=type_id).inc(created)
        if deduplicated:
            notification_deduplicated_total.labels(item_type=type_id).inc(deduplicated)

    def _log_dispatch(self, result: DispatchResult) -> None:
        extra = {
            "inserted": result.inserted,
            "deduplicated": result.deduplicated,
            "excluded": result.excluded,
            "channels": result.flush.order,
        }
        if result.flush.errors:
            self.logger.warning(
                "Notifications dispatched with channel errors",
                extra={**extra, "failed_channels": sorted(result.flush.errors)},
            )
        else:
            self.logger.info("Notifications dispatched", extra=extra)


_manager: NotificationManager | None = None


def get_notification_manager() -> NotificationManager:
    """Get the process-wide manager, bound to the default session factory.

    Senders are added with ``register_sender`` at start-up.
    """
    global _manager
    if _manager is None:
        _manager = NotificationManager(get_sessionmaker())
    return _manager


__all__ = ["NotificationManager", "get_notification_manager"]

"""Repositories for the notifications feature."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import func, select, update

from fanout_service.core.database.repository import BaseRepository, SearchResult
from fanout_service.features.notifications.models import (
    NO_CHANNEL,
    Notification,
    NotificationSubscription,
    Recipient,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy import Row
    from sqlalchemy.ext.asyncio import AsyncSession

OrderField = Literal["created_at", "id", "item_type", "read"]
OrderDirection = Literal["asc", "desc"]


def _as_id_list(ids: int | Iterable[int]) -> list[int]:
    if isinstance(ids, int):
        return [ids]
    return list(ids)


class NotificationRepository(BaseRepository[Notification]):
    """Notification store.

    Every write here runs inside the caller's transaction; nothing commits.
    """

    _ORDER_COLUMNS = {
        "created_at": Notification.created_at,
        "id": Notification.id,
        "item_type": Notification.item_type,
        "read": Notification.read,
    }

    def __init__(self) -> None:
        """Initialize with Notification model."""
        super().__init__(Notification)

    async def select_existing_recipients(
        self,
        session: AsyncSession,
        item_type: str,
        item_id: int,
    ) -> set[int]:
        """Return the recipient ids already notified about an item."""
        stmt = select(Notification.recipient_id).where(
            Notification.item_type == item_type,
            Notification.item_id == item_id,
        )
        result = await session.execute(stmt)
        existing = set(result.scalars().all())

        self._lazy.debug(lambda: f"db.select_existing_recipients({item_type=}, {item_id=}) -> {len(existing)}")
        return existing

    async def batch_insert(
        self,
        session: AsyncSession,
        rows: Sequence[Mapping[str, Any]],
    ) -> Sequence[Row[Any]]:
        """Insert notification rows in one statement.

        Rows colliding with an existing (item_type, item_id, recipient_id)
        are skipped. Returns ``(id, recipient_id)`` for the rows written.
        """
        return await self.insert_ignore_many(
            session,
            rows,
            conflict_columns=("item_type", "item_id", "recipient_id"),
            returning=(Notification.id, Notification.recipient_id),
        )

    async def update_payload(
        self,
        session: AsyncSession,
        item_type: str,
        item_id: int,
        fields: Mapping[str, Any],
    ) -> int:
        """Merge ``fields`` into the payload of every row for an item.

        Returns:
            Number of rows updated
        """
        stmt = select(Notification).where(
            Notification.item_type == item_type,
            Notification.item_id == item_id,
        )
        result = await session.execute(stmt)
        rows = result.scalars().all()
        for row in rows:
            # New dict so the JSON column registers the change
            row.payload = {**row.payload, **fields}
        await session.flush()

        self._lazy.debug(lambda: f"db.update_payload({item_type=}, {item_id=}, fields={sorted(fields)}) -> {len(rows)}")
        return len(rows)

    async def delete(
        self,
        session: AsyncSession,
        item_type: str,
        item_ids: int | Iterable[int],
        *,
        recipient_ids: Iterable[int] | None = None,
        exclude_recipient_ids: Iterable[int] | None = None,
    ) -> int:
        """Delete rows for the given item ids, optionally narrowed by recipient.

        Returns:
            Number of rows deleted
        """
        ids = _as_id_list(item_ids)
        if not ids:
            return 0

        criteria = [Notification.item_type == item_type, Notification.item_id.in_(ids)]
        if recipient_ids is not None:
            criteria.append(Notification.recipient_id.in_(list(recipient_ids)))
        if exclude_recipient_ids is not None:
            excluded = list(exclude_recipient_ids)
            if excluded:
                criteria.append(Notification.recipient_id.not_in(excluded))
        return await self.delete_where(session, *criteria)

    async def select_for_recipient(
        self,
        session: AsyncSession,
        recipient_id: int,
        *,
        order_by: OrderField = "created_at",
        order_dir: OrderDirection = "desc",
        limit: int = 5,
        offset: int = 0,
        unread_only: bool = False,
    ) -> SearchResult[Notification]:
        """Page through one recipient's notifications.

        Rows are ordered by ``order_by`` and then by ``id`` in the same
        direction, so pages are stable when the primary key ties.
        """
        column = self._ORDER_COLUMNS[order_by]
        stmt = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))

        if order_dir == "asc":
            stmt = stmt.order_by(column.asc(), Notification.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), Notification.id.desc())

        return await self.search(session, stmt, limit=limit, offset=offset)

    async def count_for_recipient(
        self,
        session: AsyncSession,
        recipient_id: int,
        *,
        unread_only: bool = True,
    ) -> int:
        """Count a recipient's notifications (unread only by default)."""
        stmt = select(func.count()).select_from(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        result = await session.execute(stmt)
        count = result.scalar_one()

        self._lazy.debug(lambda: f"db.count_for_recipient({recipient_id=}, {unread_only=}) -> {count}")
        return count

    async def mark_read(
        self,
        session: AsyncSession,
        recipient_id: int,
        notification_ids: Iterable[int] | None = None,
    ) -> int:
        """Flag a recipient's unread notifications as read.

        Args:
            session: Database session
            recipient_id: Owner of the notifications
            notification_ids: Restrict to these ids; None marks everything

        Returns:
            Number of rows changed
        """
        stmt = (
            update(Notification)
            .where(Notification.recipient_id == recipient_id, Notification.read.is_(False))
            .values(read=True, read_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        if notification_ids is not None:
            ids = list(notification_ids)
            if not ids:
                return 0
            stmt = stmt.where(Notification.id.in_(ids))

        result = await session.execute(stmt)
        changed = result.rowcount or 0

        self._lazy.debug(lambda: f"db.mark_read({recipient_id=}) -> {changed}")
        return changed


class SubscriptionRepository(BaseRepository[NotificationSubscription]):
    """Per-item channel opt-ins."""

    def __init__(self) -> None:
        """Initialize with NotificationSubscription model."""
        super().__init__(NotificationSubscription)

    async def add(
        self,
        session: AsyncSession,
        item_type: str,
        item_id: int,
        user_id: int,
        channel: str = NO_CHANNEL,
    ) -> bool:
        """Record a subscription; re-adding an existing one is a no-op.

        Returns:
            True if a new row was written
        """
        inserted = await self.insert_ignore_many(
            session,
            [{"item_type": item_type, "item_id": item_id, "user_id": user_id, "channel": channel}],
            conflict_columns=("item_type", "item_id", "user_id", "channel"),
            returning=(NotificationSubscription.id,),
        )
        return bool(inserted)

    async def remove(
        self,
        session: AsyncSession,
        item_type: str,
        item_id: int,
        user_id: int,
        channel: str | None = None,
    ) -> int:
        """Remove a user's subscription to an item (every channel when ``channel`` is None)."""
        criteria = [
            NotificationSubscription.item_type == item_type,
            NotificationSubscription.item_id == item_id,
            NotificationSubscription.user_id == user_id,
        ]
        if channel is not None:
            criteria.append(NotificationSubscription.channel == channel)
        return await self.delete_where(session, *criteria)

    async def subscribers(
        self,
        session: AsyncSession,
        item_type: str,
        item_id: int,
        *,
        user_ids: Iterable[int] | None = None,
    ) -> dict[int, set[str]]:
        """Map each subscribed user of an item to their channel tags."""
        stmt = select(NotificationSubscription.user_id, NotificationSubscription.channel).where(
            NotificationSubscription.item_type == item_type,
            NotificationSubscription.item_id == item_id,
        )
        if user_ids is not None:
            stmt = stmt.where(NotificationSubscription.user_id.in_(list(user_ids)))
        result = await session.execute(stmt)

        channels: dict[int, set[str]] = defaultdict(set)
        for user_id, channel in result.all():
            channels[user_id].add(channel)

        self._lazy.debug(lambda: f"db.subscribers({item_type=}, {item_id=}) -> {len(channels)} users")
        return dict(channels)

    async def for_user(
        self,
        session: AsyncSession,
        user_ids: Iterable[int],
        item_type: str,
        item_ids: Iterable[int],
    ) -> dict[int, set[str]]:
        """Map each item id the users are subscribed to onto its channel tags."""
        stmt = select(NotificationSubscription.item_id, NotificationSubscription.channel).where(
            NotificationSubscription.item_type == item_type,
            NotificationSubscription.item_id.in_(list(item_ids)),
            NotificationSubscription.user_id.in_(list(user_ids)),
        )
        result = await session.execute(stmt)

        channels: dict[int, set[str]] = defaultdict(set)
        for item_id, channel in result.all():
            channels[item_id].add(channel)
        return dict(channels)


class RecipientRepository(BaseRepository[Recipient]):
    """Recipient store."""

    def __init__(self) -> None:
        """Initialize with Recipient model."""
        super().__init__(Recipient)

    async def batch_get(self, session: AsyncSession, ids: Iterable[int]) -> Sequence[Recipient]:
        """Load recipients by id with one query; unknown ids are absent."""
        return await self.get_many(session, ids)


# Factory functions for dependency injection
_notification_repository: NotificationRepository | None = None
_subscription_repository: SubscriptionRepository | None = None
_recipient_repository: RecipientRepository | None = None


def get_notification_repository() -> NotificationRepository:
    """Get NotificationRepository singleton instance."""
    global _notification_repository
    if _notification_repository is None:
        _notification_repository = NotificationRepository()
    return _notification_repository


def get_subscription_repository() -> SubscriptionRepository:
    """Get SubscriptionRepository singleton instance."""
    global _subscription_repository
    if _subscription_repository is None:
        _subscription_repository = SubscriptionRepository()
    return _subscription_repository


def get_recipient_repository() -> RecipientRepository:
    """Get RecipientRepository singleton instance."""
    global _recipient_repository
    if _recipient_repository is None:
        _recipient_repository = RecipientRepository()
    return _recipient_repository

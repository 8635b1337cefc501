"""SQLAlchemy models for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint, false, true
from sqlalchemy.orm import Mapped, mapped_column

from fanout_service.core.database import Base, IntegerPKMixin, JSONType, TimestampedBase

# Channel tag meaning "record the notification, deliver nowhere"
NO_CHANNEL = "none"


class Notification(TimestampedBase):
    """One notification row per (item type, item, recipient).

    The unique constraint on (item_type, item_id, recipient_id) is the
    storage-level guarantee that a recipient is notified at most once per
    item. The dispatch engine inserts with ``ON CONFLICT DO NOTHING`` against
    it, so a concurrent duplicate is skipped rather than raised.

    Indexes:
        - (recipient_id, created_at) for the per-user read path
        - (item_type, item_id) for dedup, update and delete by item
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "item_type",
            "item_id",
            "recipient_id",
            name="uq_notifications_item_recipient",
        ),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        Index("ix_notifications_item", "item_type", "item_id"),
    )

    item_type: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Registered type identifier (e.g. 'reply', 'quote')",
    )
    item_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Item identifier computed by the type from the event data",
    )
    recipient_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="User being notified",
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Type-specific data used for rendering",
    )
    read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        comment="Whether the recipient has seen the notification",
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the notification was marked read",
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, item_type={self.item_type!r}, "
            f"item_id={self.item_id}, recipient_id={self.recipient_id})>"
        )


class NotificationSubscription(TimestampedBase):
    """A user's opt-in to notifications about an item through one channel.

    Shares only the item identity (item_type, item_id) with Notification.
    ``item_id`` 0 is used by types that subscribe users globally rather than
    per item.
    """

    __tablename__ = "notification_subscriptions"
    __table_args__ = (
        UniqueConstraint(
            "item_type",
            "item_id",
            "user_id",
            "channel",
            name="uq_notification_subscriptions_item_user_channel",
        ),
        Index("ix_notification_subscriptions_item", "item_type", "item_id"),
    )

    item_type: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    channel: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=NO_CHANNEL,
        comment="Delivery channel tag; 'none' records without delivering",
    )


class Recipient(Base, IntegerPKMixin):
    """User profile data needed to render and address a notification."""

    __tablename__ = "recipients"

    username: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    locale: Mapped[str] = mapped_column(String(16), nullable=False, default="en", server_default="en")
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    def __repr__(self) -> str:
        return f"<Recipient(id={self.id}, username={self.username!r})>"


__all__ = [
    "NO_CHANNEL",
    "Notification",
    "NotificationSubscription",
    "Recipient",
]

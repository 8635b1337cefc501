"""Notification type descriptors.

A type decides, for one kind of event, which item the event is about,
who is told and through which channels, what gets stored, and how a stored
row is rendered. Descriptors are stateless; one instance per type id lives
in the registry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from fanout_service.features.notifications.rendering import RenderedMessage, get_message_renderer

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fanout_service.core.settings import NotificationSettings
    from fanout_service.features.notifications.context import ActingUser
    from fanout_service.features.notifications.models import Notification
    from fanout_service.features.notifications.recipients import RecipientCache
    from fanout_service.features.notifications.repository import (
        NotificationRepository,
        SubscriptionRepository,
    )

EventData = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class TypeContext:
    """Storage access handed to type hooks.

    ``session`` is the operation's open transaction; hooks must not commit.
    """

    session: AsyncSession
    actor: ActingUser
    settings: NotificationSettings
    notifications: NotificationRepository
    subscriptions: SubscriptionRepository


class NotificationType(ABC):
    """Base class for notification types.

    Subclasses set ``type_id`` and the three message templates, and
    implement the abstract hooks. The other hooks have no-op defaults.
    """

    type_id: ClassVar[str]

    title_template: ClassVar[str] = "New {{ item_type }} notification"
    body_template: ClassVar[str] = ""
    url_template: ClassVar[str | None] = None

    @abstractmethod
    def get_item_id(self, data: EventData) -> int:
        """Compute the item id the event is about."""

    @abstractmethod
    async def find_recipients(self, ctx: TypeContext, data: EventData) -> dict[int, set[str]]:
        """Map each recipient id to the channel tags it should be reached on.

        A tag of ``none`` records the notification without delivering it.
        Filtering out the acting user and the anonymous sentinel is done by
        the engine, not here.
        """

    @abstractmethod
    def build_insert_payload(self, data: EventData, recipient_id: int) -> dict[str, Any]:
        """Build the stored payload for one recipient."""

    def build_update_payload(self, data: EventData) -> dict[str, Any]:
        """Fields merged into existing rows when the item changes."""
        return {}

    def users_to_query(self, notification: Notification) -> set[int]:
        """Users, besides the recipient, needed to render this notification."""
        return set()

    async def update_notifications(self, ctx: TypeContext, data: EventData) -> bool:
        """Hook run before the default payload update.

        Return False when the type has fully handled the update itself; the
        engine then skips the default update and stops.
        """
        return True

    def special_keys(self, notification: Notification) -> set[Hashable]:
        """Keys of auxiliary data this notification needs on the read path."""
        return set()

    async def load_special(
        self,
        ctx: TypeContext,
        keys: set[Hashable],
        notifications: Sequence[Notification],
    ) -> Mapping[Hashable, Any]:
        """Load auxiliary data for every key at once; called once per page."""
        return {}

    def render_context(self, notification: Notification, recipients: RecipientCache) -> dict[str, Any]:
        """Variables available to the message templates."""
        return {
            **notification.payload,
            "item_type": notification.item_type,
            "item_id": notification.item_id,
            "notification": notification,
            "recipient": lookup_user(recipients, notification.recipient_id),
        }

    def render(self, notification: Notification, recipients: RecipientCache) -> RenderedMessage:
        """Render the notification for channel senders."""
        return get_message_renderer().render(
            self.type_id,
            title=self.title_template,
            body=self.body_template,
            url=self.url_template,
            context=self.render_context(notification, recipients),
            data={
                "item_type": notification.item_type,
                "item_id": notification.item_id,
                **notification.payload,
            },
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(type_id={self.type_id!r})>"


def lookup_user(recipients: RecipientCache, user_id: Any) -> Any:
    """Recipient for templates, or None when it was not loaded or does not exist."""
    if not isinstance(user_id, int) or user_id not in recipients:
        return None
    return recipients.get_or_none(user_id)

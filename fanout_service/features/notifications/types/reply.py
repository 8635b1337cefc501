"""``reply``: a new post in a topic, sent to the topic's subscribers."""

from __future__ import annotations

from collections.abc import Hashable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from fanout_service.features.notifications.types.base import EventData, NotificationType, TypeContext, lookup_user

if TYPE_CHECKING:
    from fanout_service.features.notifications.models import Notification
    from fanout_service.features.notifications.recipients import RecipientCache


class ReplyNotification(NotificationType):
    """Notify everyone subscribed to a topic that someone replied.

    Event data:
        post_id: The new post (the item)
        topic_id: Topic the post belongs to; subscriptions are keyed on it
        poster_id: Author of the post
        topic_title: Title shown in the message
        post_subject: Optional subject of the post
    """

    type_id = "reply"

    title_template = '{{ poster.username if poster else "Someone" }} replied to "{{ topic_title }}"'
    body_template = "{{ post_subject or topic_title }}"
    url_template = "/topics/{{ topic_id }}#p{{ item_id }}"

    def get_item_id(self, data: EventData) -> int:
        return int(data["post_id"])

    async def find_recipients(self, ctx: TypeContext, data: EventData) -> dict[int, set[str]]:
        return await ctx.subscriptions.subscribers(ctx.session, self.type_id, int(data["topic_id"]))

    def build_insert_payload(self, data: EventData, recipient_id: int) -> dict[str, Any]:
        return {
            "topic_id": int(data["topic_id"]),
            "poster_id": int(data["poster_id"]),
            "topic_title": data.get("topic_title", ""),
            "post_subject": data.get("post_subject", ""),
        }

    def build_update_payload(self, data: EventData) -> dict[str, Any]:
        return {key: data[key] for key in ("topic_title", "post_subject") if key in data}

    def users_to_query(self, notification: Notification) -> set[int]:
        poster_id = notification.payload.get("poster_id")
        return {poster_id} if poster_id is not None else set()

    def special_keys(self, notification: Notification) -> set[Hashable]:
        return {notification.payload["topic_id"]}

    async def load_special(
        self,
        ctx: TypeContext,
        keys: set[Hashable],
        notifications: Sequence[Notification],
    ) -> Mapping[Hashable, Any]:
        """Topic id -> channels the readers are still subscribed with."""
        readers = {notification.recipient_id for notification in notifications}
        return await ctx.subscriptions.for_user(ctx.session, readers, self.type_id, keys)

    def render_context(self, notification: Notification, recipients: RecipientCache) -> dict[str, Any]:
        context = super().render_context(notification, recipients)
        context["poster"] = lookup_user(recipients, notification.payload.get("poster_id"))
        return context

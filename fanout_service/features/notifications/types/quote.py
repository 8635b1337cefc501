"""``quote``: users quoted in a post."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fanout_service.features.notifications.types.base import EventData, NotificationType, TypeContext, lookup_user

if TYPE_CHECKING:
    from fanout_service.features.notifications.models import Notification
    from fanout_service.features.notifications.recipients import RecipientCache

# Subscriptions to quotes are global, not per post
GLOBAL_ITEM_ID = 0


class QuoteNotification(NotificationType):
    """Notify users quoted in a post.

    Channels come from the user's global ``quote`` subscription (item id 0);
    users without one get the configured default channels.

    Editing a post can drop quotes. When the event carries
    ``quoted_user_ids`` the update hook deletes the rows of users who are no
    longer quoted; either way the default payload update runs for the rest.
    Newly quoted users are picked up by calling ``add_notification`` again;
    dedup keeps existing recipients untouched.

    Event data:
        post_id: The quoting post (the item)
        topic_id: Topic of the post
        poster_id: Author of the post
        quoted_user_ids: Users quoted in the post
        topic_title: Title shown in the message
    """

    type_id = "quote"

    title_template = '{{ poster.username if poster else "Someone" }} quoted you in "{{ topic_title }}"'
    body_template = ""
    url_template = "/topics/{{ topic_id }}#p{{ item_id }}"

    def get_item_id(self, data: EventData) -> int:
        return int(data["post_id"])

    def quoted_users(self, data: EventData) -> set[int]:
        return {int(user_id) for user_id in data.get("quoted_user_ids", ())}

    async def find_recipients(self, ctx: TypeContext, data: EventData) -> dict[int, set[str]]:
        quoted = self.quoted_users(data)
        if not quoted:
            return {}
        opted_in = await ctx.subscriptions.subscribers(
            ctx.session,
            self.type_id,
            GLOBAL_ITEM_ID,
            user_ids=quoted,
        )
        defaults = set(ctx.settings.default_channels)
        return {user_id: opted_in.get(user_id) or set(defaults) for user_id in quoted}

    def build_insert_payload(self, data: EventData, recipient_id: int) -> dict[str, Any]:
        return {
            "topic_id": int(data["topic_id"]),
            "poster_id": int(data["poster_id"]),
            "topic_title": data.get("topic_title", ""),
        }

    def build_update_payload(self, data: EventData) -> dict[str, Any]:
        return {"topic_title": data["topic_title"]} if "topic_title" in data else {}

    async def update_notifications(self, ctx: TypeContext, data: EventData) -> bool:
        if "quoted_user_ids" not in data:
            return True
        await ctx.notifications.delete(
            ctx.session,
            self.type_id,
            self.get_item_id(data),
            exclude_recipient_ids=self.quoted_users(data),
        )
        return True

    def users_to_query(self, notification: Notification) -> set[int]:
        poster_id = notification.payload.get("poster_id")
        return {poster_id} if poster_id is not None else set()

    def render_context(self, notification: Notification, recipients: RecipientCache) -> dict[str, Any]:
        context = super().render_context(notification, recipients)
        context["poster"] = lookup_user(recipients, notification.payload.get("poster_id"))
        return context

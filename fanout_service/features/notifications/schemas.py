"""Request and result types for the notification engine."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fanout_service.core.exceptions import ChannelDeliveryError
    from fanout_service.features.notifications.channels.base import DeliveryResult
    from fanout_service.features.notifications.models import Notification, Recipient
    from fanout_service.features.notifications.recipients import RecipientCache
    from fanout_service.features.notifications.rendering import RenderedMessage
    from fanout_service.features.notifications.types.base import NotificationType


class LoadOptions(BaseModel):
    """Filter, ordering and page for the read path.

    ``recipient_id`` defaults to the acting user and ``limit`` to the
    configured page size.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    recipient_id: int | None = Field(default=None, description="Whose notifications to load")
    order_by: Literal["created_at", "id", "item_type", "read"] = Field(
        default="created_at",
        description="Primary sort field; ties are broken by id",
    )
    order_dir: Literal["asc", "desc"] = Field(default="desc", description="Sort direction")
    limit: int | None = Field(default=None, ge=1, description="Page size")
    start: int = Field(default=0, ge=0, description="Rows to skip")
    unread_only: bool = Field(default=False, description="Only unread notifications")


@dataclass(slots=True)
class FlushReport:
    """Outcome of flushing every channel queue of one dispatch call.

    Attributes:
        results: Per-item results, by channel tag, for channels whose sender ran
        errors: Channels whose flush failed as a whole
        order: Channel tags in the order they were flushed
    """

    results: dict[str, list[DeliveryResult]] = field(default_factory=dict)
    errors: dict[str, ChannelDeliveryError] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and all(r.success for batch in self.results.values() for r in batch)

    @property
    def delivered(self) -> int:
        return sum(1 for batch in self.results.values() for r in batch if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for batch in self.results.values() for r in batch if not r.success)


@dataclass(slots=True)
class DispatchResult:
    """What one dispatch call did.

    Attributes:
        item_type: Type identifier
        item_id: Item the dispatch was about
        notified: Recipient ids that got a new row, in insert order
        deduplicated: Recipients skipped because they already had a row
        excluded: Candidates dropped as the anonymous sentinel or the acting user
        handled_by_type: The type's update hook asked the engine to stop
        flush: Channel delivery outcome
    """

    item_type: str
    item_id: int
    notified: list[int] = field(default_factory=list)
    deduplicated: int = 0
    excluded: int = 0
    handled_by_type: bool = False
    flush: FlushReport = field(default_factory=FlushReport)

    @property
    def inserted(self) -> int:
        return len(self.notified)


@dataclass(slots=True)
class LoadedNotifications:
    """One page of notifications plus everything needed to render it.

    Attributes:
        items: Notifications in the requested order
        total: Rows matching the filter across all pages
        recipients: Recipient cache holding the users the page's types asked for
        special: Per type id, what the type's ``load_special`` returned
        types: Descriptor for each stored item_type on the page
        start: Offset of this page
        limit: Page size used
    """

    items: list[Notification]
    total: int
    recipients: RecipientCache
    special: dict[str, dict[Hashable, Any]] = field(default_factory=dict)
    types: dict[str, NotificationType] = field(default_factory=dict)
    start: int = 0
    limit: int = 0

    def get_recipient(self, recipient_id: int) -> Recipient:
        """Return a user loaded for this page (raises NotLoadedError otherwise)."""
        return self.recipients.get(recipient_id)

    def render(self, notification: Notification) -> RenderedMessage:
        """Render a notification of this page with its type's templates."""
        return self.types[notification.item_type].render(notification, self.recipients)

    @property
    def has_next(self) -> bool:
        return self.start + len(self.items) < self.total

    def __iter__(self) -> Iterator[Notification]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

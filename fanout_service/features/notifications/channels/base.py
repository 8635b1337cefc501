"""Base protocol and types for channel senders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fanout_service.features.notifications.models import Notification, Recipient
    from fanout_service.features.notifications.rendering import RenderedMessage


@dataclass
class DeliveryResult:
    """Result of delivering one notification through a channel.

    Attributes:
        success: Whether delivery succeeded
        notification_id: Notification the result is about
        recipient_id: User it was addressed to
        status_code: Transport status code, if the transport has one
        response_time_ms: Time taken for delivery in milliseconds
        error_message: Error description if failed
        error_category: Error classification (validation, transport, ...)
        metadata: Channel-specific metadata
    """

    success: bool
    notification_id: int | None = None
    recipient_id: int | None = None
    status_code: int | None = None
    response_time_ms: int | None = None
    error_message: str | None = None
    error_category: str | None = None
    metadata: dict[str, str | int | bool] | None = None


@dataclass(frozen=True, slots=True)
class DeliveryItem:
    """One queued notification, rendered and addressed, as handed to a sender.

    ``recipient`` is None when the recipient id does not exist in the
    recipient store.
    """

    notification: Notification
    recipient: Recipient | None
    message: RenderedMessage

    @property
    def notification_id(self) -> int:
        return self.notification.id

    @property
    def recipient_id(self) -> int:
        return self.notification.recipient_id


@runtime_checkable
class ChannelSender(Protocol):
    """Protocol for channel-specific senders.

    A sender is called at most once per dispatch call, with every item
    queued for its channel. It reports a result per item; raising means the
    whole batch failed.
    """

    channel: str

    async def send(self, batch: Sequence[DeliveryItem]) -> list[DeliveryResult]:
        """Deliver a batch.

        Args:
            batch: Items queued for this channel, in enqueue order

        Returns:
            One DeliveryResult per item
        """
        ...

"""WebSocket channel sender."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Protocol

from fanout_service.features.notifications.channels.base import DeliveryItem, DeliveryResult
from fanout_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence


class ConnectionRegistry(Protocol):
    """Live connections, addressable by user."""

    async def send_to_user(self, user_id: int, payload: dict[str, Any]) -> int:
        """Push ``payload`` to every connection of ``user_id``; return how many got it."""
        ...


class WebSocketChannelSender:
    """Pushes notifications to the recipient's open WebSocket connections.

    A user with no open connection is still a success: the notification is
    stored and shows up on the next load.
    """

    channel = "websocket"

    def __init__(self, connections: ConnectionRegistry, *, event_type: str = "notification") -> None:
        self._connections = connections
        self._event_type = event_type
        self._lazy = get_lazy_logger(__name__)

    async def send(self, batch: Sequence[DeliveryItem]) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []
        for item in batch:
            start_time = time.perf_counter()
            connection_count = await self._connections.send_to_user(item.recipient_id, self.build_payload(item))
            results.append(
                DeliveryResult(
                    success=True,
                    notification_id=item.notification_id,
                    recipient_id=item.recipient_id,
                    response_time_ms=int((time.perf_counter() - start_time) * 1000),
                    metadata={"channel": f"user/{item.recipient_id}", "connection_count": connection_count},
                )
            )
            self._lazy.debug(
                lambda: f"WebSocket push for notification {item.notification_id}: {connection_count} connection(s)"
            )
        return results

    def build_payload(self, item: DeliveryItem) -> dict[str, Any]:
        notification = item.notification
        return {
            "type": self._event_type,
            "notification": {
                "id": notification.id,
                "item_type": notification.item_type,
                "item_id": notification.item_id,
                "title": item.message.title,
                "body": item.message.body,
                "url": item.message.url,
                "data": item.message.data,
                "created_at": notification.created_at.isoformat() if notification.created_at else None,
            },
        }

"""Email channel sender."""

from __future__ import annotations

import time
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

from fanout_service.features.notifications.channels.base import DeliveryItem, DeliveryResult
from fanout_service.infra.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence


class EmailTransport(Protocol):
    """Outbound mail transport (SMTP client, provider API, ...)."""

    async def send_message(self, message: EmailMessage) -> str | None:
        """Send one message; return the provider message id if there is one."""
        ...


class EmailChannelSender:
    """Sends each queued notification as a plain text email.

    Items whose recipient is unknown, inactive or has no address fail with
    ``error_category="validation"``; a transport error fails only that item.
    """

    channel = "email"

    def __init__(self, transport: EmailTransport, *, from_address: str = "notifications@localhost") -> None:
        self._transport = transport
        self._from_address = from_address
        self._logger = get_logger(__name__, channel=self.channel)

    async def send(self, batch: Sequence[DeliveryItem]) -> list[DeliveryResult]:
        results = [await self._send_one(item) for item in batch]
        self._logger.info(
            "Email batch sent",
            extra={"batch_size": len(batch), "delivered": sum(r.success for r in results)},
        )
        return results

    async def _send_one(self, item: DeliveryItem) -> DeliveryResult:
        recipient = item.recipient
        if recipient is None or not recipient.is_active or not recipient.email:
            return DeliveryResult(
                success=False,
                notification_id=item.notification_id,
                recipient_id=item.recipient_id,
                error_message="No email address found for recipient",
                error_category="validation",
            )

        start_time = time.perf_counter()
        try:
            message_id = await self._transport.send_message(self._build_message(item, recipient.email))
        except Exception as exc:
            self._logger.exception(
                "Email delivery failed",
                extra={"notification_id": item.notification_id, "recipient_id": item.recipient_id},
            )
            return DeliveryResult(
                success=False,
                notification_id=item.notification_id,
                recipient_id=item.recipient_id,
                error_message=str(exc),
                error_category="transport",
                response_time_ms=int((time.perf_counter() - start_time) * 1000),
            )

        return DeliveryResult(
            success=True,
            notification_id=item.notification_id,
            recipient_id=item.recipient_id,
            response_time_ms=int((time.perf_counter() - start_time) * 1000),
            metadata={"message_id": message_id} if message_id else None,
        )

    def _build_message(self, item: DeliveryItem, address: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._from_address
        message["To"] = address
        message["Subject"] = item.message.title
        body = item.message.body
        if item.message.url:
            body = f"{body}\n\n{item.message.url}" if body else item.message.url
        message.set_content(body or item.message.title)
        return message

"""Unit tests for per-dispatch channel queues."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from fanout_service.core.exceptions import ChannelDeliveryError
from fanout_service.features.notifications.channels import ChannelQueues, DeliveryItem, DeliveryResult
from fanout_service.features.notifications.models import Notification
from fanout_service.features.notifications.rendering import RenderedMessage


def _notification(notification_id: int, recipient_id: int) -> Notification:
    now = datetime.now(UTC)
    return Notification(
        id=notification_id,
        item_type="reply",
        item_id=100,
        recipient_id=recipient_id,
        payload={},
        read=False,
        created_at=now,
        updated_at=now,
    )


def _build_item(notification: Notification) -> DeliveryItem:
    return DeliveryItem(notification=notification, recipient=None, message=RenderedMessage(title="t"))


def test_none_channel_is_never_queued() -> None:
    queues = ChannelQueues()

    queues.enqueue("none", _notification(1, 42))

    assert not queues
    assert queues.channels() == []


def test_channels_in_first_enqueue_order() -> None:
    queues = ChannelQueues()
    queues.enqueue("websocket", _notification(1, 42))
    queues.enqueue("email", _notification(2, 43))
    queues.enqueue("websocket", _notification(3, 44))

    assert queues.channels() == ["websocket", "email"]
    assert [n.id for n in queues.pending("websocket")] == [1, 3]
    assert queues.recipient_ids() == {42, 43, 44}
    assert len(queues) == 3


@pytest.mark.asyncio
async def test_each_channel_flushes_once_with_full_batch(sender_factory) -> None:
    email = sender_factory("email")
    queues = ChannelQueues()
    for notification_id, recipient_id in ((1, 42), (2, 43), (3, 44)):
        queues.enqueue("email", _notification(notification_id, recipient_id))

    report = await queues.flush_all({"email": email}, _build_item)

    assert len(email.batches) == 1
    assert email.recipient_ids == [42, 43, 44]
    assert report.ok
    assert report.delivered == 3
    assert not queues


@pytest.mark.asyncio
async def test_failing_channel_does_not_block_siblings(sender_factory) -> None:
    email = sender_factory("email", fail_with=RuntimeError("smtp down"))
    push = sender_factory("push")
    queues = ChannelQueues()
    queues.enqueue("email", _notification(1, 42))
    queues.enqueue("push", _notification(1, 42))

    report = await queues.flush_all({"email": email, "push": push}, _build_item)

    assert report.order == ["email", "push"]
    assert isinstance(report.errors["email"], ChannelDeliveryError)
    assert isinstance(report.errors["email"].cause, RuntimeError)
    assert report.errors["email"].batch_size == 1
    assert push.recipient_ids == [42]
    assert report.delivered == 1
    assert not report.ok


@pytest.mark.asyncio
async def test_missing_sender_is_reported(sender_factory) -> None:
    push = sender_factory("push")
    queues = ChannelQueues()
    queues.enqueue("sms", _notification(1, 42))
    queues.enqueue("push", _notification(1, 42))

    report = await queues.flush_all({"push": push}, _build_item)

    assert "sms" in report.errors
    assert "No sender" in report.errors["sms"].message
    assert push.recipient_ids == [42]


@pytest.mark.asyncio
async def test_build_failure_is_reported_per_channel(sender_factory) -> None:
    email = sender_factory("email")
    queues = ChannelQueues()
    queues.enqueue("email", _notification(1, 42))

    def broken(notification: Notification) -> DeliveryItem:
        raise ValueError("cannot render")

    report = await queues.flush_all({"email": email}, broken)

    assert email.batches == []
    assert "cannot render" in report.errors["email"].message


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    class CancelledSender:
        channel = "email"

        async def send(self, batch):
            raise asyncio.CancelledError

    queues = ChannelQueues()
    queues.enqueue("email", _notification(1, 42))

    with pytest.raises(asyncio.CancelledError):
        await queues.flush_all({"email": CancelledSender()}, _build_item)


@pytest.mark.asyncio
async def test_per_item_failures_are_counted() -> None:
    class HalfSender:
        channel = "email"

        async def send(self, batch):
            return [
                DeliveryResult(success=index % 2 == 0, notification_id=item.notification_id)
                for index, item in enumerate(batch)
            ]

    queues = ChannelQueues(metrics_enabled=False)
    queues.enqueue("email", _notification(1, 42))
    queues.enqueue("email", _notification(2, 43))

    report = await queues.flush_all({"email": HalfSender()}, _build_item)

    assert report.delivered == 1
    assert report.failed == 1
    assert not report.errors

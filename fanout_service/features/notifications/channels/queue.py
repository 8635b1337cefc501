"""Per-dispatch channel queues."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from fanout_service.core.exceptions import ChannelDeliveryError
from fanout_service.features.notifications.metrics import (
    notification_channel_errors_total,
    notification_delivered_total,
    notification_flush_duration_seconds,
)
from fanout_service.features.notifications.models import NO_CHANNEL
from fanout_service.features.notifications.schemas import FlushReport
from fanout_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from fanout_service.features.notifications.channels.base import ChannelSender, DeliveryItem
    from fanout_service.features.notifications.models import Notification

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)


class ChannelQueues:
    """Pending notifications of one dispatch call, bucketed by channel tag.

    A tag's queue is created on first enqueue; tags flush in that order.
    ``none`` is never queued. ``flush_all`` hands each non-empty queue to
    its sender exactly once and empties it.
    """

    def __init__(self, *, metrics_enabled: bool = True) -> None:
        self._queues: dict[str, list[Notification]] = {}
        self._metrics_enabled = metrics_enabled

    def enqueue(self, channel: str, notification: Notification) -> None:
        if channel == NO_CHANNEL:
            return
        self._queues.setdefault(channel, []).append(notification)

    def pending(self, channel: str) -> list[Notification]:
        return list(self._queues.get(channel, ()))

    def channels(self) -> list[str]:
        """Tags with at least one pending entry, in first-enqueue order."""
        return [channel for channel, queue in self._queues.items() if queue]

    def recipient_ids(self) -> set[int]:
        return {notification.recipient_id for queue in self._queues.values() for notification in queue}

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._queues.values())

    def __bool__(self) -> bool:
        return any(self._queues.values())

    async def flush_all(
        self,
        senders: Mapping[str, ChannelSender],
        build_item: Callable[[Notification], DeliveryItem],
    ) -> FlushReport:
        """Send every non-empty queue through its channel's sender.

        A channel whose sender is missing, raises, or whose items fail to
        build is recorded in ``FlushReport.errors`` and the remaining
        channels still flush. Cancellation is not caught.
        """
        report = FlushReport()

        for channel in self.channels():
            queue = self._queues.pop(channel)
            report.order.append(channel)

            sender = senders.get(channel)
            if sender is None:
                logger.warning(
                    "No sender registered for channel",
                    extra={"channel": channel, "batch_size": len(queue)},
                )
                report.errors[channel] = ChannelDeliveryError(
                    channel,
                    f"No sender registered for channel {channel!r}",
                    batch_size=len(queue),
                )
                self._count_error(channel)
                continue

            start = time.perf_counter()
            try:
                batch = [build_item(notification) for notification in queue]
                results = list(await sender.send(batch))
            except Exception as exc:
                logger.exception(
                    "Channel flush failed",
                    extra={"channel": channel, "batch_size": len(queue)},
                )
                report.errors[channel] = ChannelDeliveryError(
                    channel,
                    f"Channel {channel!r} failed to deliver {len(queue)} notification(s): {exc}",
                    batch_size=len(queue),
                    cause=exc,
                )
                self._count_error(channel)
                continue
            finally:
                if self._metrics_enabled:
                    notification_flush_duration_seconds.labels(channel=channel).observe(
                        time.perf_counter() - start
                    )

            report.results[channel] = results
            self._count_results(channel, results)
            _lazy.debug(
                lambda: f"Flushed channel {channel}: batch={len(queue)} "
                f"ok={sum(r.success for r in results)}"
            )

        return report

    def _count_error(self, channel: str) -> None:
        if self._metrics_enabled:
            notification_channel_errors_total.labels(channel=channel).inc()

    def _count_results(self, channel: str, results: list) -> None:
        if not self._metrics_enabled:
            return
        delivered = sum(1 for result in results if result.success)
        if delivered:
            notification_delivered_total.labels(channel=channel, status="delivered").inc(delivered)
        if len(results) - delivered:
            notification_delivered_total.labels(channel=channel, status="failed").inc(len(results) - delivered)

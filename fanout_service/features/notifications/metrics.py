"""Prometheus metrics for notification dispatch and delivery.

Usage:
    from fanout_service.features.notifications.metrics import notification_created_total

    notification_created_total.labels(item_type="reply").inc(3)
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Dispatch Metrics
# =============================================================================

notification_created_total = Counter(
    "notification_created_total",
    "Total number of notification rows created",
    labelnames=["item_type"],
)

notification_deduplicated_total = Counter(
    "notification_deduplicated_total",
    "Recipients skipped because they were already notified about the item",
    labelnames=["item_type"],
)
"""
Counts both recipients removed by the dedup read and rows skipped by the
unique constraint during the guarded insert.
"""

# =============================================================================
# Delivery Metrics
# =============================================================================

notification_delivered_total = Counter(
    "notification_delivered_total",
    "Total number of notification deliveries by channel and status",
    labelnames=["channel", "status"],
)
"""
Labels:
    channel: Channel tag (email, websocket, ...)
    status: delivered | failed
"""

notification_flush_duration_seconds = Histogram(
    "notification_flush_duration_seconds",
    "Time spent handing one channel batch to its sender",
    labelnames=["channel"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_channel_errors_total = Counter(
    "notification_channel_errors_total",
    "Channel flushes that failed as a whole (sender raised or no sender registered)",
    labelnames=["channel"],
)

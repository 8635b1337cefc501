"""Delivery channels."""

from fanout_service.features.notifications.channels.base import ChannelSender, DeliveryItem, DeliveryResult
from fanout_service.features.notifications.channels.email import EmailChannelSender, EmailTransport
from fanout_service.features.notifications.channels.queue import ChannelQueues
from fanout_service.features.notifications.channels.websocket import ConnectionRegistry, WebSocketChannelSender

__all__ = [
    "ChannelQueues",
    "ChannelSender",
    "ConnectionRegistry",
    "DeliveryItem",
    "DeliveryResult",
    "EmailChannelSender",
    "EmailTransport",
    "WebSocketChannelSender",
]

"""Notification fan-out and delivery-dispatch engine."""

__version__ = "0.1.0"

"""Modular Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from fanout_service.core.settings import get_notification_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file (development only)
"""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import (
    clear_all_caches,
    get_db_settings,
    get_logging_settings,
    get_notification_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings

__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "NotificationSettings",
    "clear_all_caches",
    "get_db_settings",
    "get_logging_settings",
    "get_notification_settings",
]

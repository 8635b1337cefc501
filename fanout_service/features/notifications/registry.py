"""Item type registry.

Maps type identifiers to their descriptor instances. Populated at start-up
and read-only afterwards, so concurrent lookups need no locking.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from fanout_service.core.exceptions import DuplicateTypeError, UnknownTypeError

if TYPE_CHECKING:
    from fanout_service.features.notifications.types.base import NotificationType

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z_]")


def sanitize_type_id(type_id: str) -> str:
    """Strip everything outside ``[a-z_]`` from an identifier read back from storage."""
    return _UNSAFE_CHARS.sub("", type_id)


class NotificationTypeRegistry:
    """Registry of notification type descriptors.

    Example:
        registry = NotificationTypeRegistry()
        registry.register(ReplyNotification())
        registry.resolve("reply")
    """

    def __init__(self) -> None:
        self._types: dict[str, NotificationType] = {}

    def register(self, descriptor: NotificationType, type_id: str | None = None) -> NotificationType:
        """Register a descriptor under its own ``type_id`` or an explicit one.

        Raises:
            DuplicateTypeError: The id is already taken.
        """
        type_id = type_id or descriptor.type_id
        if type_id in self._types:
            raise DuplicateTypeError(type_id)
        self._types[type_id] = descriptor
        logger.debug("Registered notification type %s", type_id)
        return descriptor

    def resolve(self, type_id: str, *, trusted: bool = True) -> NotificationType:
        """Look up a descriptor.

        Args:
            type_id: Identifier to resolve
            trusted: False for identifiers read from stored rows; those are
                sanitized before lookup

        Raises:
            UnknownTypeError: Nothing is registered under the identifier.
        """
        key = type_id if trusted else sanitize_type_id(type_id)
        try:
            return self._types[key]
        except KeyError:
            raise UnknownTypeError(key) from None

    def type_ids(self) -> list[str]:
        return list(self._types)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._types

    def __len__(self) -> int:
        return len(self._types)


_registry: NotificationTypeRegistry | None = None


def get_notification_type_registry() -> NotificationTypeRegistry:
    """Get the process-wide registry, populated with the built-in types."""
    global _registry
    if _registry is None:
        from fanout_service.features.notifications.types import QuoteNotification, ReplyNotification

        registry = NotificationTypeRegistry()
        registry.register(ReplyNotification())
        registry.register(QuoteNotification())
        _registry = registry
    return _registry

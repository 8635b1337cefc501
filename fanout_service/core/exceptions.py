"""Exception hierarchy for the notification engine.

Every error raised by the engine derives from :class:`NotificationError` so
callers can catch the whole family at the application boundary. Each error
carries a human readable message plus a ``details`` dict with the structured
context that gets attached to log records.
"""

from __future__ import annotations

from typing import Any


class NotificationError(Exception):
    """Base exception for notification engine operations.

    Attributes:
        message: Error description
        details: Additional context about the error
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize notification error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class UnknownTypeError(NotificationError):
    """Item type identifier is not registered.

    Fatal to the operation: raised before any storage work happens, so
    nothing is partially written.
    """

    def __init__(self, type_id: str) -> None:
        self.type_id = type_id
        super().__init__(
            f"Unknown notification type {type_id!r}",
            details={"type_id": type_id},
        )


class DuplicateTypeError(NotificationError):
    """A descriptor is already registered under this type identifier."""

    def __init__(self, type_id: str) -> None:
        self.type_id = type_id
        super().__init__(
            f"Notification type {type_id!r} is already registered",
            details={"type_id": type_id},
        )


class NotLoadedError(NotificationError):
    """Recipient is not available from the cache.

    With ``loaded=False`` this is a caller bug: ``RecipientCache.ensure_loaded``
    must run before ``RecipientCache.get`` for the same id. With
    ``loaded=True`` the id was loaded but the store has no such recipient.
    """

    def __init__(self, recipient_id: int, *, loaded: bool = False) -> None:
        self.recipient_id = recipient_id
        self.loaded = loaded
        message = (
            f"Recipient {recipient_id} does not exist in the store"
            if loaded
            else f"Recipient {recipient_id} was never loaded into the cache"
        )
        super().__init__(message, details={"recipient_id": recipient_id, "loaded": loaded})


class StorageError(NotificationError):
    """Store-level failure (connectivity, constraint, driver error).

    The operation that raised it is aborted and its transaction rolled back.
    """

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        details: dict[str, Any] = {"operation": operation}
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(f"Storage operation {operation!r} failed", details=details)


class ChannelDeliveryError(NotificationError):
    """A channel flush failed.

    Reported per channel; never aborts sibling channels and never affects
    notification rows that were already committed.
    """

    def __init__(
        self,
        channel: str,
        message: str,
        *,
        batch_size: int = 0,
        cause: BaseException | None = None,
    ) -> None:
        self.channel = channel
        self.batch_size = batch_size
        self.cause = cause
        super().__init__(
            message,
            details={"channel": channel, "batch_size": batch_size},
        )


class RenderError(NotificationError):
    """A type's message template failed to render."""

    def __init__(self, type_id: str, message: str) -> None:
        self.type_id = type_id
        super().__init__(message, details={"type_id": type_id})


__all__ = [
    "ChannelDeliveryError",
    "DuplicateTypeError",
    "NotLoadedError",
    "NotificationError",
    "RenderError",
    "StorageError",
    "UnknownTypeError",
]

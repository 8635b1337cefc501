"""Acting-user context.

The user on whose behalf an operation runs is held in a ContextVar, so each
async task sees its own value. The dispatch engine never notifies the acting
user about their own action and records subscriptions under their id.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass

from fanout_service.core.settings import get_notification_settings


@dataclass(frozen=True, slots=True)
class ActingUser:
    """Current user plus the sentinel id that stands for guests."""

    user_id: int
    anonymous_id: int

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == self.anonymous_id


_acting_user: ContextVar[ActingUser | None] = ContextVar("acting_user", default=None)


def get_acting_user() -> ActingUser:
    """Return the acting user for the current task.

    Falls back to the anonymous sentinel when nothing was set.
    """
    current = _acting_user.get()
    if current is not None:
        return current
    anonymous_id = get_notification_settings().anonymous_user_id
    return ActingUser(user_id=anonymous_id, anonymous_id=anonymous_id)


def set_acting_user(user_id: int, *, anonymous_id: int | None = None) -> Token[ActingUser | None]:
    """Set the acting user; returns a token for ``reset_acting_user``."""
    if anonymous_id is None:
        anonymous_id = get_notification_settings().anonymous_user_id
    return _acting_user.set(ActingUser(user_id=user_id, anonymous_id=anonymous_id))


def reset_acting_user(token: Token[ActingUser | None]) -> None:
    _acting_user.reset(token)


@contextmanager
def acting_user(user_id: int, *, anonymous_id: int | None = None) -> Iterator[ActingUser]:
    """Run a block on behalf of ``user_id``.

    Example:
        with acting_user(42):
            await manager.add_notification("reply", data)
    """
    token = set_acting_user(user_id, anonymous_id=anonymous_id)
    try:
        yield _acting_user.get()  # type: ignore[misc]
    finally:
        _acting_user.reset(token)


__all__ = [
    "ActingUser",
    "acting_user",
    "get_acting_user",
    "reset_acting_user",
    "set_acting_user",
]

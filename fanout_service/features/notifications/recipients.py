"""Per-operation recipient cache."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from fanout_service.core.exceptions import NotLoadedError
from fanout_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from fanout_service.features.notifications.models import Recipient
    from fanout_service.features.notifications.repository import RecipientRepository

_lazy = get_lazy_logger(__name__)


class RecipientCache:
    """Recipients loaded for one operation, keyed by id.

    ``ensure_loaded`` is the only method that touches storage: it reads the
    ids not seen before in one batched query. Ids the store does not know
    are remembered as missing so they are not queried again. ``get`` never
    fetches; asking for an id that was never ensured is a caller bug and
    raises ``NotLoadedError``.
    """

    def __init__(self, repository: RecipientRepository, session: AsyncSession) -> None:
        self._repository = repository
        self._session = session
        self._entries: dict[int, Recipient | None] = {}
        self.queries = 0

    async def ensure_loaded(self, ids: Iterable[int]) -> None:
        missing = {recipient_id for recipient_id in ids if recipient_id not in self._entries}
        if not missing:
            return

        found = await self._repository.batch_get(self._session, missing)
        self.queries += 1
        for recipient in found:
            self._entries[recipient.id] = recipient
        for recipient_id in missing:
            self._entries.setdefault(recipient_id, None)

        _lazy.debug(lambda: f"recipient_cache.ensure_loaded: requested={len(missing)} found={len(found)}")

    def get(self, recipient_id: int) -> Recipient:
        """Return a loaded recipient.

        Raises:
            NotLoadedError: The id was never ensured, or the store had no such
                recipient (``loaded=True``).
        """
        recipient = self.get_or_none(recipient_id)
        if recipient is None:
            raise NotLoadedError(recipient_id, loaded=True)
        return recipient

    def get_or_none(self, recipient_id: int) -> Recipient | None:
        """Return a loaded recipient, or None if the store had no such id.

        Raises:
            NotLoadedError: The id was never ensured.
        """
        if recipient_id not in self._entries:
            raise NotLoadedError(recipient_id)
        return self._entries[recipient_id]

    def ids(self) -> set[int]:
        """Ids that resolved to a stored recipient."""
        return {recipient_id for recipient_id, recipient in self._entries.items() if recipient is not None}

    def as_dict(self) -> dict[int, Recipient]:
        return {recipient_id: recipient for recipient_id, recipient in self._entries.items() if recipient is not None}

    def __contains__(self, recipient_id: object) -> bool:
        return recipient_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

"""Dedup filter: drop recipients already notified about an item."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fanout_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from fanout_service.features.notifications.repository import NotificationRepository

_lazy = get_lazy_logger(__name__)


class DedupFilter:
    """One read of the existing recipient ids for (type, item), then a set difference.

    Must run inside the same transaction and per-item lock as the insert
    that follows it. The unique constraint catches anything that slips
    past, e.g. a writer in another process.
    """

    def __init__(self, repository: NotificationRepository) -> None:
        self._repository = repository

    async def filter(
        self,
        session: AsyncSession,
        item_type: str,
        item_id: int,
        candidates: Mapping[int, set[str]],
    ) -> dict[int, set[str]]:
        if not candidates:
            return {}

        existing = await self._repository.select_existing_recipients(session, item_type, item_id)
        fresh = {recipient_id: tags for recipient_id, tags in candidates.items() if recipient_id not in existing}

        _lazy.debug(
            lambda: f"dedup.filter({item_type=}, {item_id=}): candidates={len(candidates)} kept={len(fresh)}"
        )
        return fresh

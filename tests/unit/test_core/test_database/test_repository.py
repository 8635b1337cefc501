"""Unit tests for BaseRepository helpers against in-memory SQLite."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fanout_service.core.database import BaseRepository, SearchResult
from fanout_service.features.notifications.models import Notification, Recipient


@pytest.fixture
def recipient_repository() -> BaseRepository[Recipient]:
    return BaseRepository(Recipient)


@pytest.fixture
def notification_repository() -> BaseRepository[Notification]:
    return BaseRepository(Notification)


def _row(recipient_id: int, item_id: int = 100) -> dict:
    now = datetime.now(UTC)
    return {
        "item_type": "reply",
        "item_id": item_id,
        "recipient_id": recipient_id,
        "payload": {"topic_id": 7},
        "read": False,
        "created_at": now,
        "updated_at": now,
    }


@pytest.mark.asyncio
async def test_get_many_skips_unknown_ids(
    db_session: AsyncSession, recipient_repository: BaseRepository[Recipient]
) -> None:
    db_session.add_all(Recipient(id=recipient_id, username=f"user{recipient_id}") for recipient_id in (1, 2, 3))
    await db_session.flush()

    found = await recipient_repository.get_many(db_session, [1, 3, 99])

    assert sorted(r.id for r in found) == [1, 3]
    assert await recipient_repository.get_many(db_session, []) == []


@pytest.mark.asyncio
async def test_search_pages_with_total(
    db_session: AsyncSession, recipient_repository: BaseRepository[Recipient]
) -> None:
    db_session.add_all(Recipient(id=recipient_id, username=f"user{recipient_id}") for recipient_id in range(1, 6))
    await db_session.flush()

    page = await recipient_repository.search(
        db_session, select(Recipient).order_by(Recipient.id), limit=2, offset=2
    )

    assert isinstance(page, SearchResult)
    assert [r.id for r in page.items] == [3, 4]
    assert page.total == 5
    assert page.has_next is True
    assert page.has_prev is True


@pytest.mark.asyncio
async def test_insert_ignore_many_skips_conflicts(
    db_session: AsyncSession, notification_repository: BaseRepository[Notification]
) -> None:
    """Rows colliding on the unique constraint are skipped, not raised."""
    first = await notification_repository.insert_ignore_many(
        db_session,
        [_row(42)],
        conflict_columns=("item_type", "item_id", "recipient_id"),
        returning=(Notification.id, Notification.recipient_id),
    )
    second = await notification_repository.insert_ignore_many(
        db_session,
        [_row(42), _row(43)],
        conflict_columns=("item_type", "item_id", "recipient_id"),
        returning=(Notification.id, Notification.recipient_id),
    )

    assert [row.recipient_id for row in first] == [42]
    assert [row.recipient_id for row in second] == [43]
    total = (await db_session.execute(select(Notification.recipient_id))).scalars().all()
    assert sorted(total) == [42, 43]


@pytest.mark.asyncio
async def test_insert_ignore_many_empty_is_noop(
    db_session: AsyncSession, notification_repository: BaseRepository[Notification]
) -> None:
    result = await notification_repository.insert_ignore_many(
        db_session,
        [],
        conflict_columns=("item_type", "item_id", "recipient_id"),
        returning=(Notification.id,),
    )

    assert result == []


@pytest.mark.asyncio
async def test_delete_where_returns_count(
    db_session: AsyncSession, notification_repository: BaseRepository[Notification]
) -> None:
    await notification_repository.insert_ignore_many(
        db_session,
        [_row(1), _row(2), _row(3, item_id=200)],
        conflict_columns=("item_type", "item_id", "recipient_id"),
        returning=(Notification.id,),
    )

    deleted = await notification_repository.delete_where(db_session, Notification.item_id == 100)

    assert deleted == 2
    assert await notification_repository.delete_where(db_session, Notification.item_id == 100) == 0


def test_pk_attr_requires_id() -> None:
    class NoId:
        pass

    with pytest.raises(AttributeError):
        BaseRepository(NoId)._pk_attr()

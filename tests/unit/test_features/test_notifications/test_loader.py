"""Unit tests for the notification read path."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from fanout_service.core.exceptions import NotLoadedError
from fanout_service.core.settings import NotificationSettings
from fanout_service.features.notifications.context import acting_user
from fanout_service.features.notifications.loader import NotificationLoader
from fanout_service.features.notifications.models import Notification
from fanout_service.features.notifications.repository import RecipientRepository
from fanout_service.features.notifications.schemas import LoadOptions

TOPIC = 7


class CountingRecipientRepository(RecipientRepository):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[set[int]] = []

    async def batch_get(self, session, ids):
        ids = set(ids)
        self.calls.append(ids)
        return await super().batch_get(session, ids)


@pytest.fixture
async def stored(session_factory, seeded_recipients):
    """Four reply notifications for user 42, one minute apart, plus one for 43.

    Returns the ids for 42, oldest first.
    """
    base = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    rows = [
        Notification(
            item_type="reply",
            item_id=100 + index,
            recipient_id=42,
            payload={"topic_id": TOPIC, "poster_id": 1 if index % 2 else 2, "topic_title": f"Topic {index}"},
            created_at=base + timedelta(minutes=index),
            updated_at=base + timedelta(minutes=index),
        )
        for index in range(4)
    ]
    rows.append(
        Notification(
            item_type="reply",
            item_id=100,
            recipient_id=43,
            payload={"topic_id": TOPIC, "poster_id": 1, "topic_title": "Topic 0"},
            created_at=base,
            updated_at=base,
        )
    )
    async with session_factory.begin() as session:
        session.add_all(rows)
    return [row.id for row in rows[:4]]


@pytest.fixture
def loader(session_factory, type_registry, notification_settings) -> NotificationLoader:
    return NotificationLoader(session_factory, registry=type_registry, settings=notification_settings)


@pytest.mark.asyncio
async def test_pagination_round_trip(loader, stored):
    """Two pages of two over four rows return each row once, newest first."""
    with acting_user(42, anonymous_id=0):
        first = await loader.load(LoadOptions(limit=2, start=0))
        second = await loader.load(LoadOptions(limit=2, start=2))

    ids = [n.id for n in first] + [n.id for n in second]
    assert ids == list(reversed(stored))
    assert first.total == second.total == 4
    assert first.has_next
    assert not second.has_next
    created = [n.created_at for n in first.items + second.items]
    assert created == sorted(created, reverse=True)


@pytest.mark.asyncio
async def test_ascending_order_and_explicit_recipient(loader, stored):
    page = await loader.load(LoadOptions(recipient_id=42, order_by="id", order_dir="asc", limit=10))

    assert [n.id for n in page] == stored
    assert len(page) == 4


@pytest.mark.asyncio
async def test_limit_defaults_and_cap(session_factory, type_registry, stored):
    settings = NotificationSettings(anonymous_user_id=0, default_load_limit=3, max_load_limit=3)
    loader = NotificationLoader(session_factory, registry=type_registry, settings=settings)

    with acting_user(42, anonymous_id=0):
        default_page = await loader.load()
        capped_page = await loader.load(LoadOptions(limit=50))

    assert default_page.limit == 3
    assert len(default_page) == 3
    assert capped_page.limit == 3


@pytest.mark.asyncio
async def test_render_users_loaded_in_one_read(session_factory, type_registry, notification_settings, stored):
    recipients = CountingRecipientRepository()
    loader = NotificationLoader(
        session_factory, registry=type_registry, settings=notification_settings, recipients=recipients
    )

    with acting_user(42, anonymous_id=0):
        page = await loader.load(LoadOptions(limit=10))

    assert recipients.calls == [{1, 2}]
    assert page.get_recipient(1).username == "poster"
    assert page.get_recipient(2).username == "bob"
    with pytest.raises(NotLoadedError):
        page.get_recipient(42)


@pytest.mark.asyncio
async def test_special_data_loaded_per_type(manager, stored):
    with acting_user(42, anonymous_id=0):
        await manager.add_subscription("reply", TOPIC, "email")
        page = await manager.load(LoadOptions(limit=10))

    assert page.special == {"reply": {TOPIC: {"email"}}}


@pytest.mark.asyncio
async def test_render_from_page(loader, stored):
    with acting_user(42, anonymous_id=0):
        page = await loader.load(LoadOptions(limit=1))

    message = page.render(page.items[0])
    assert message.title == 'poster replied to "Topic 3"'
    assert message.url == f"/topics/{TOPIC}#p103"


@pytest.mark.asyncio
async def test_unregistered_stored_type_is_skipped(loader, session_factory, stored, caplog):
    now = datetime.now(UTC)
    async with session_factory.begin() as session:
        session.add(
            Notification(item_type="retired", item_id=1, recipient_id=42, payload={}, created_at=now, updated_at=now)
        )

    with acting_user(42, anonymous_id=0):
        page = await loader.load(LoadOptions(limit=10))

    assert len(page) == 4
    assert page.total == 5
    assert all(n.item_type == "reply" for n in page)
    assert "unregistered type" in caplog.text


@pytest.mark.asyncio
async def test_unread_only(manager, stored):
    with acting_user(42, anonymous_id=0):
        await manager.mark_read(stored[:3])
        page = await manager.load(LoadOptions(unread_only=True))

    assert [n.id for n in page] == [stored[3]]


@pytest.mark.asyncio
async def test_empty_page(loader, seeded_recipients):
    with acting_user(2, anonymous_id=0):
        page = await loader.load()

    assert page.items == []
    assert page.total == 0
    assert page.special == {}


def test_load_options_validation():
    with pytest.raises(ValidationError):
        LoadOptions(limit=0)
    with pytest.raises(ValidationError):
        LoadOptions(start=-1)
    with pytest.raises(ValidationError):
        LoadOptions(order_by="payload")
    with pytest.raises(ValidationError):
        LoadOptions(page=2)

"""Pytest configuration and shared fixtures.

Organization:
    - Environment: settings caches and log context reset between tests
    - Database Fixtures: in-memory SQLite engine, session factory, seeded recipients
    - Engine Fixtures: type registry, recording channel senders, NotificationManager
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterator, Sequence
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from fanout_service.core.database.base import Base
from fanout_service.core.database.session import create_sessionmaker
from fanout_service.core.settings import NotificationSettings, clear_all_caches
from fanout_service.features.notifications.channels.base import DeliveryItem, DeliveryResult
from fanout_service.features.notifications.models import Notification, Recipient
from fanout_service.features.notifications.registry import NotificationTypeRegistry
from fanout_service.features.notifications.service import NotificationManager
from fanout_service.features.notifications.types import QuoteNotification, ReplyNotification
from fanout_service.infra.logging import clear_log_context

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_process_state() -> Iterator[None]:
    """Reload settings and start every test with an empty log context."""
    clear_all_caches()
    clear_log_context()
    yield
    clear_all_caches()
    clear_log_context()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Create async SQLAlchemy engine with in-memory SQLite and all tables.

    StaticPool keeps the single in-memory connection alive for every session
    the test opens.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the production one."""
    return create_sessionmaker(db_engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Session for direct repository tests; rolled back afterwards."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


RECIPIENTS = {
    1: ("poster", "poster@example.com"),
    2: ("bob", "bob@example.com"),
    3: ("carol", "carol@example.com"),
    42: ("alice", "alice@example.com"),
    43: ("dave", None),
}


@pytest.fixture
async def seeded_recipients(session_factory: async_sessionmaker[AsyncSession]) -> dict[int, str]:
    """Insert the standard recipients; returns id -> username."""
    async with session_factory.begin() as session:
        session.add_all(
            Recipient(id=recipient_id, username=username, email=email)
            for recipient_id, (username, email) in RECIPIENTS.items()
        )
    return {recipient_id: username for recipient_id, (username, _) in RECIPIENTS.items()}


@pytest.fixture
def fetch_notifications(session_factory: async_sessionmaker[AsyncSession]):
    """Read stored notifications in a short-lived session.

    Example:
        rows = await fetch_notifications("reply", 100)
    """

    async def _fetch(item_type: str | None = None, item_id: int | None = None) -> list[Notification]:
        stmt = select(Notification).order_by(Notification.id)
        if item_type is not None:
            stmt = stmt.where(Notification.item_type == item_type)
        if item_id is not None:
            stmt = stmt.where(Notification.item_id == item_id)
        async with session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    return _fetch


# ============================================================================
# Engine Fixtures
# ============================================================================


class RecordingSender:
    """Channel sender that records every batch it is handed."""

    def __init__(self, channel: str, *, fail_with: Exception | None = None) -> None:
        self.channel = channel
        self.batches: list[list[DeliveryItem]] = []
        self.fail_with = fail_with

    async def send(self, batch: Sequence[DeliveryItem]) -> list[DeliveryResult]:
        self.batches.append(list(batch))
        if self.fail_with is not None:
            raise self.fail_with
        return [
            DeliveryResult(success=True, notification_id=item.notification_id, recipient_id=item.recipient_id)
            for item in batch
        ]

    @property
    def recipient_ids(self) -> list[int]:
        return [item.recipient_id for batch in self.batches for item in batch]


@pytest.fixture
def notification_settings() -> NotificationSettings:
    """Settings with guest id 0, so tests can act as user 1."""
    return NotificationSettings(anonymous_user_id=0, default_load_limit=5, max_load_limit=50)


@pytest.fixture
def type_registry() -> NotificationTypeRegistry:
    """Fresh registry holding the built-in types."""
    registry = NotificationTypeRegistry()
    registry.register(ReplyNotification())
    registry.register(QuoteNotification())
    return registry


@pytest.fixture
def email_sender() -> RecordingSender:
    return RecordingSender("email")


@pytest.fixture
def websocket_sender() -> RecordingSender:
    return RecordingSender("websocket")


@pytest.fixture
def manager(
    session_factory: async_sessionmaker[AsyncSession],
    type_registry: NotificationTypeRegistry,
    notification_settings: NotificationSettings,
    email_sender: RecordingSender,
    websocket_sender: RecordingSender,
) -> NotificationManager:
    """NotificationManager wired to the in-memory database and recording senders."""
    return NotificationManager(
        session_factory,
        registry=type_registry,
        senders=[email_sender, websocket_sender],
        settings=notification_settings,
    )


@pytest.fixture
def sender_factory() -> type[RecordingSender]:
    """The recording sender class, for tests that need extra channels.

    Example:
        push = sender_factory("push", fail_with=RuntimeError("gateway down"))
    """
    return RecordingSender

"""Unit tests for the per-operation recipient cache."""

from __future__ import annotations

import pytest

from fanout_service.core.exceptions import NotLoadedError
from fanout_service.features.notifications.models import Recipient
from fanout_service.features.notifications.recipients import RecipientCache
from fanout_service.features.notifications.repository import RecipientRepository


class CountingRecipientRepository:
    """Recipient store double that records every batch read."""

    def __init__(self, known: dict[int, str]) -> None:
        self.known = known
        self.calls: list[set[int]] = []

    async def batch_get(self, session, ids):
        ids = set(ids)
        self.calls.append(ids)
        return [Recipient(id=i, username=self.known[i]) for i in ids if i in self.known]


@pytest.fixture
def store() -> CountingRecipientRepository:
    return CountingRecipientRepository({1: "poster", 42: "alice", 43: "dave"})


@pytest.mark.asyncio
async def test_ensure_loaded_reads_only_missing_ids(store: CountingRecipientRepository) -> None:
    cache = RecipientCache(store, session=None)

    await cache.ensure_loaded([42, 43])
    await cache.ensure_loaded([42, 43, 1])
    await cache.ensure_loaded([1, 42])

    assert store.calls == [{42, 43}, {1}]
    assert cache.queries == 2
    assert cache.get(42).username == "alice"


@pytest.mark.asyncio
async def test_unknown_ids_are_not_queried_again(store: CountingRecipientRepository) -> None:
    cache = RecipientCache(store, session=None)

    await cache.ensure_loaded([99])
    await cache.ensure_loaded([99])

    assert store.calls == [{99}]
    assert 99 in cache
    assert cache.get_or_none(99) is None
    assert cache.ids() == set()


@pytest.mark.asyncio
async def test_empty_request_issues_no_read(store: CountingRecipientRepository) -> None:
    cache = RecipientCache(store, session=None)

    await cache.ensure_loaded([])

    assert store.calls == []
    assert len(cache) == 0


def test_get_without_ensure_raises(store: CountingRecipientRepository) -> None:
    cache = RecipientCache(store, session=None)

    with pytest.raises(NotLoadedError) as exc_info:
        cache.get(42)
    with pytest.raises(NotLoadedError):
        cache.get_or_none(42)

    assert exc_info.value.recipient_id == 42
    assert exc_info.value.loaded is False
    assert store.calls == []


@pytest.mark.asyncio
async def test_get_for_missing_recipient_raises(store: CountingRecipientRepository) -> None:
    cache = RecipientCache(store, session=None)
    await cache.ensure_loaded([7])

    with pytest.raises(NotLoadedError) as exc_info:
        cache.get(7)

    assert exc_info.value.loaded is True
    assert cache.get_or_none(7) is None


@pytest.mark.asyncio
async def test_batch_read_against_database(session_factory, seeded_recipients) -> None:
    """One query loads every requested recipient from the real store."""
    async with session_factory() as session:
        cache = RecipientCache(RecipientRepository(), session)
        await cache.ensure_loaded([1, 42, 43, 404])

        assert cache.queries == 1
        assert cache.as_dict().keys() == {1, 42, 43}
        assert cache.get(43).email is None

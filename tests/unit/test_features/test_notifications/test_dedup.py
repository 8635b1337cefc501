"""Unit tests for the dedup filter."""

from __future__ import annotations

import pytest

from fanout_service.features.notifications.dedup import DedupFilter


class ExistingRecipients:
    def __init__(self, existing: set[int]) -> None:
        self.existing = existing
        self.calls: list[tuple[str, int]] = []

    async def select_existing_recipients(self, session, item_type, item_id):
        self.calls.append((item_type, item_id))
        return set(self.existing)


@pytest.mark.asyncio
async def test_removes_already_notified_recipients() -> None:
    store = ExistingRecipients({42})

    fresh = await DedupFilter(store).filter(None, "reply", 100, {42: {"email"}, 43: {"none"}})

    assert fresh == {43: {"none"}}
    assert store.calls == [("reply", 100)]


@pytest.mark.asyncio
async def test_fully_notified_set_is_empty() -> None:
    store = ExistingRecipients({42, 43})

    assert await DedupFilter(store).filter(None, "reply", 100, {42: {"email"}, 43: {"none"}}) == {}


@pytest.mark.asyncio
async def test_empty_candidates_skip_the_read() -> None:
    store = ExistingRecipients(set())

    assert await DedupFilter(store).filter(None, "reply", 100, {}) == {}
    assert store.calls == []

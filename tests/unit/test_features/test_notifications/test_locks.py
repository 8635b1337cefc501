"""Unit tests for the keyed asyncio lock."""

from __future__ import annotations

import asyncio

import pytest

from fanout_service.features.notifications.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized() -> None:
    locks = KeyedLock()
    events: list[str] = []

    async def worker(name: str) -> None:
        async with locks.acquire(("reply", 1)):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    await asyncio.gather(worker("a"), worker("b"))

    assert events == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_different_keys_do_not_wait() -> None:
    locks = KeyedLock()
    inner_ran = asyncio.Event()

    async with locks.acquire(("reply", 1)):
        assert locks.locked(("reply", 1))
        async with locks.acquire(("reply", 2)):
            inner_ran.set()

    assert inner_ran.is_set()


@pytest.mark.asyncio
async def test_unused_locks_are_dropped() -> None:
    locks = KeyedLock()

    async with locks.acquire("a"):
        assert len(locks) == 1

    assert len(locks) == 0
    assert not locks.locked("a")


@pytest.mark.asyncio
async def test_lock_released_on_error() -> None:
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.acquire("a"):
            raise RuntimeError("boom")

    assert len(locks) == 0

"""Tests for per-session locks."""

import asyncio

import pytest

from talon_context.locks import SessionLockTable


@pytest.mark.asyncio
async def test_same_session_is_serialised():
    table = SessionLockTable()
    order: list[str] = []

    async def turn(name: str) -> None:
        async with table.hold("s1"):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(turn("a"), turn("b"))
    assert order == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_different_sessions_run_concurrently():
    table = SessionLockTable()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def first() -> None:
        async with table.hold("s1"):
            inside.set()
            await release.wait()

    task = asyncio.create_task(first())
    await inside.wait()
    async with table.hold("s2"):
        assert table.locked("s1")
        assert table.locked("s2")
    release.set()
    await task
    assert len(table) == 0


@pytest.mark.asyncio
async def test_lock_released_on_error():
    table = SessionLockTable()
    with pytest.raises(RuntimeError):
        async with table.hold("s1"):
            raise RuntimeError("boom")
    assert not table.locked("s1")


@pytest.mark.asyncio
async def test_entry_removed_once_released():
    table = SessionLockTable()
    async with table.hold("s1"):
        assert "s1" in table
        assert len(table) == 1
    assert "s1" not in table
    assert len(table) == 0


@pytest.mark.asyncio
async def test_entry_kept_while_another_task_waits():
    table = SessionLockTable()
    release = asyncio.Event()
    inside = asyncio.Event()

    async def first() -> None:
        async with table.hold("s1"):
            inside.set()
            await release.wait()

    async def second() -> None:
        async with table.hold("s1"):
            assert "s1" in table

    t1 = asyncio.create_task(first())
    await inside.wait()
    t2 = asyncio.create_task(second())
    await asyncio.sleep(0)
    release.set()
    await t1
    await t2
    assert len(table) == 0


@pytest.mark.asyncio
async def test_entry_removed_when_waiter_is_cancelled():
    table = SessionLockTable()
    release = asyncio.Event()
    inside = asyncio.Event()

    async def holder() -> None:
        async with table.hold("s1"):
            inside.set()
            await release.wait()

    async def waiter() -> None:
        async with table.hold("s1"):
            pass

    t1 = asyncio.create_task(holder())
    await inside.wait()
    t2 = asyncio.create_task(waiter())
    await asyncio.sleep(0)
    t2.cancel()
    with pytest.raises(asyncio.CancelledError):
        await t2
    release.set()
    await t1
    assert len(table) == 0

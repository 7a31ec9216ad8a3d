from __future__ import annotations

import asyncio

import pytest

from pywaweb.util.asyncio import promise_timeout
from pywaweb.util.events import AsyncEventEmitter


@pytest.mark.asyncio
async def test_emit_calls_sync_and_async_listeners_in_order() -> None:
    ee = AsyncEventEmitter()
    calls: list[str] = []

    async def a(x: int) -> None:
        await asyncio.sleep(0)
        calls.append(f"a{x}")

    ee.on("e", a)
    ee.on("e", lambda x: calls.append(f"b{x}"))

    assert await ee.emit("e", 1) is True
    assert calls == ["a1", "b1"]
    assert await ee.emit("other") is False


@pytest.mark.asyncio
async def test_once_and_off() -> None:
    ee = AsyncEventEmitter()
    calls: list[int] = []
    ee.once("e", calls.append)
    await ee.emit("e", 1)
    await ee.emit("e", 2)
    assert calls == [1]
    assert ee.listener_count("e") == 0

    ee.on("e", calls.append)
    ee.off("e", calls.append)
    await ee.emit("e", 3)
    assert calls == [1]


@pytest.mark.asyncio
async def test_wait_for_predicate_and_timeout() -> None:
    ee = AsyncEventEmitter()
    fut = asyncio.ensure_future(ee.wait_for("e", predicate=lambda x: x > 1))
    await asyncio.sleep(0)
    await ee.emit("e", 1)
    assert not fut.done()
    await ee.emit("e", 2)
    assert await fut == 2

    with pytest.raises(asyncio.TimeoutError):
        await ee.wait_for("e", timeout_s=0.01)
    # Timed-out waiter is cleaned up.
    assert await ee.emit("e", 3) is False


@pytest.mark.asyncio
async def test_off_removes_once_listener() -> None:
    ee = AsyncEventEmitter()
    calls: list[int] = []
    ee.once("e", calls.append)
    ee.off("e", calls.append)
    assert ee.listener_count("e") == 0

    await ee.emit("e", 1)
    assert calls == []


@pytest.mark.asyncio
async def test_promise_timeout() -> None:
    async def value() -> int:
        return 7

    assert await promise_timeout(None, value()) == 7
    assert await promise_timeout(1, value()) == 7
    with pytest.raises(asyncio.TimeoutError):
        await promise_timeout(0.01, asyncio.sleep(1))

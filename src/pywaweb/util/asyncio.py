from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


async def promise_timeout(timeout_s: float | None, aw: Awaitable[T]) -> T:
    """Await `aw`, raising `asyncio.TimeoutError` after `timeout_s` (None waits forever)."""
    if timeout_s is None:
        return await aw
    return await asyncio.wait_for(aw, timeout=timeout_s)


async def cancel_suppress(task: asyncio.Task[Any] | None) -> None:
    if not task or task.done():
        return
    # Awaiting the current task from itself raises; callers that stop from
    # inside the task just return instead.
    if task is asyncio.current_task():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def ensure_task(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
    return asyncio.create_task(coro, name=name)

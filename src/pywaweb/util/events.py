from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .asyncio import promise_timeout

Listener = Callable[..., Awaitable[None]] | Callable[..., None]
Predicate = Callable[..., bool]


@dataclass(slots=True)
class _Waiter:
    predicate: Predicate | None
    future: asyncio.Future[Any]

    def matches(self, *args: Any, **kwargs: Any) -> bool:
        return True if self.predicate is None else bool(self.predicate(*args, **kwargs))


class AsyncEventEmitter:
    """
    Event registry for client callbacks.

    - `on(event, fn)` / `once(event, fn)` register sync or async listeners.
    - `emit(event, *args)` calls listeners in registration order, awaiting
      async ones before moving to the next.
    - `wait_for(event, predicate, timeout_s)` waits for the next matching emission.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._waiters: dict[str, list[_Waiter]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def once(self, event: str, listener: Listener) -> None:
        async def _once(*args: Any, **kwargs: Any) -> None:
            self.off(event, _once)
            res = listener(*args, **kwargs)
            if asyncio.iscoroutine(res):
                await res

        _once.__wrapped__ = listener  # type: ignore[attr-defined]
        self.on(event, _once)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        # `once` listeners are stored wrapped; match either form.
        for registered in listeners:
            if registered is listener or getattr(registered, "__wrapped__", None) is listener:
                listeners.remove(registered)
                break
        if not listeners:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
            self._waiters.clear()
            return
        self._listeners.pop(event, None)
        self._waiters.pop(event, None)

    def wait_for_future(self, event: str, *, predicate: Predicate | None = None) -> asyncio.Future[Any]:
        """
        Register a waiter *synchronously* and return its Future.

        Checking a condition and then awaiting `wait_for` leaves a window where
        the event can fire unseen; registering first closes it.
        """
        fut: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._waiters[event].append(_Waiter(predicate, fut))
        return fut

    def _drop_waiter(self, event: str, fut: asyncio.Future[Any]) -> None:
        waiters = self._waiters.get(event)
        if not waiters:
            return
        kept = [w for w in waiters if w.future is not fut and not w.future.done()]
        if kept:
            self._waiters[event] = kept
        else:
            self._waiters.pop(event, None)

    def _resolve_waiters(self, event: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> bool:
        waiters = self._waiters.pop(event, None)
        if not waiters:
            return False
        resolved = False
        remaining: list[_Waiter] = []
        for w in waiters:
            if w.future.done():
                continue
            if w.matches(*args, **kwargs):
                w.future.set_result(args[0] if len(args) == 1 and not kwargs else (args, kwargs))
                resolved = True
            else:
                remaining.append(w)
        if remaining:
            self._waiters[event] = remaining
        return resolved

    async def emit(self, event: str, *args: Any, **kwargs: Any) -> bool:
        """Return True when at least one listener or waiter saw the event."""

        triggered = self._resolve_waiters(event, args, kwargs)
        for listener in list(self._listeners.get(event, ())):
            triggered = True
            res = listener(*args, **kwargs)
            if asyncio.iscoroutine(res):
                await res
        return triggered

    async def wait_for(
        self,
        event: str,
        *,
        predicate: Predicate | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        fut = self.wait_for_future(event, predicate=predicate)
        try:
            return await promise_timeout(timeout_s, fut)
        finally:
            self._drop_waiter(event, fut)

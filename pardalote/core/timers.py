"""Scheduling primitives: a millisecond clock with cancellable callbacks.

Everything in the session that waits (reconnect backoff, throttled writes,
sweeps) goes through a :class:`Scheduler`, so tests can swap in the
:class:`VirtualScheduler` and drive time by hand.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from collections.abc import Callable
from typing import Protocol

LOGGER = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(Protocol):
    def now(self) -> float:
        """Current time in milliseconds."""

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms`` milliseconds."""

    async def sleep(self, delay_ms: float) -> None:
        """Suspend the calling coroutine for ``delay_ms`` milliseconds."""


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        return self._get_loop().call_later(max(0.0, delay_ms) / 1000.0, callback)

    async def sleep(self, delay_ms: float) -> None:
        await asyncio.sleep(max(0.0, delay_ms) / 1000.0)


class _VirtualHandle:
    def __init__(self, due: float, callback: Callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Manually advanced clock.

    Time only moves through :meth:`advance` (or :meth:`sleep`, which advances
    the clock itself), firing due callbacks in deadline order.
    """

    def __init__(self, start_ms: float = 1000.0) -> None:
        self._now = float(start_ms)
        self._queue: list[tuple[float, int, _VirtualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        handle = _VirtualHandle(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def next_deadline(self) -> float | None:
        live = [due for due, _, handle in self._queue if not handle.cancelled]
        return min(live) if live else None

    def advance(self, delay_ms: float) -> None:
        target = self._now + delay_ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            handle.callback()
        self._now = target

    async def sleep(self, delay_ms: float) -> None:
        self.advance(max(0.0, delay_ms))
        await asyncio.sleep(0)


class CancellableTimer:
    """At most one pending callback for a single logical target.

    Scheduling replaces whatever was pending, which gives last-write-wins
    coalescing for throttled sends.
    """

    def __init__(self, scheduler: Scheduler, *, poll_ms: float = 5) -> None:
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None
        self._poll_ms = poll_ms

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay_ms: float, callback: Callback) -> None:
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay_ms, _fire)

    def cancel(self) -> bool:
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    async def wait_idle(self) -> None:
        while self._handle is not None:
            await self._scheduler.sleep(self._poll_ms)

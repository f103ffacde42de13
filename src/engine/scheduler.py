"""
Tick and deadline scheduling for the session engine.

Everything time-driven in the engine (timer ticks, the debounced store
flush, the auto-save loop) goes through a Scheduler so that every pending
callback is an explicit handle that can be cancelled deterministically.

- AsyncioScheduler: production driver, callbacks run on the running event loop
- ManualScheduler: virtual clock advanced explicitly (simulations, tests)
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import Callable, Protocol

from loguru import logger

Callback = Callable[[], None]


def epoch_ms() -> int:
    """Wall-clock timestamp in milliseconds (for records and envelopes)."""
    return int(time.time() * 1000)


class Handle(Protocol):
    """A cancellable scheduled callback."""

    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock plus one-shot and repeating callbacks, all in milliseconds."""

    def now(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callback) -> Handle: ...

    def call_every(self, interval_ms: float, callback: Callback) -> Handle: ...


# =============================================================================
# Asyncio driver
# =============================================================================


class _LoopHandle:
    """Wraps asyncio.TimerHandle; re-arms itself when repeating."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        delay_ms: float,
        callback: Callback,
        repeat: bool,
    ):
        self._loop = loop
        self._delay = max(0.0, delay_ms) / 1000.0
        self._callback = callback
        self._repeat = repeat
        self._cancelled = False
        self._timer: asyncio.TimerHandle | None = loop.call_later(self._delay, self._fire)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        if self._cancelled:
            return
        if self._repeat:
            self._timer = self._loop.call_later(self._delay, self._fire)
        else:
            self._timer = None
        try:
            self._callback()
        except Exception:  # Intentionally broad - a failing callback must not kill the loop
            logger.exception("Scheduled callback failed")


class AsyncioScheduler:
    """
    Scheduler backed by the running asyncio event loop.

    Callbacks are plain functions invoked on the loop thread, which keeps the
    engine single-threaded and cooperative. Must be used from inside a
    running loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callback) -> Handle:
        return _LoopHandle(self._get_loop(), delay_ms, callback, repeat=False)

    def call_every(self, interval_ms: float, callback: Callback) -> Handle:
        return _LoopHandle(self._get_loop(), interval_ms, callback, repeat=True)


# =============================================================================
# Manual driver
# =============================================================================


class _ManualHandle:
    def __init__(self, due: float, interval: float | None, callback: Callback):
        self.due = due
        self.interval = interval
        self.callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler with a virtual clock.

    Time only moves when advance() is called; due callbacks fire in
    chronological order with the clock set to their due time.

    Usage:
        scheduler = ManualScheduler()
        timer = DualTimer(scheduler, bus)
        timer.start_global()
        scheduler.advance(5000)
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: list[tuple[float, int, _ManualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callback) -> Handle:
        handle = _ManualHandle(self._now + max(0.0, delay_ms), None, callback)
        self._push(handle)
        return handle

    def call_every(self, interval_ms: float, callback: Callback) -> Handle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        handle = _ManualHandle(self._now + interval_ms, float(interval_ms), callback)
        self._push(handle)
        return handle

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) scheduled callbacks."""
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing every callback that falls due."""
        if ms < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            if handle.interval is not None:
                handle.due = due + handle.interval
                self._push(handle)
            handle.callback()
        self._now = target

    def _push(self, handle: _ManualHandle) -> None:
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))

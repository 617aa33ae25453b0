"""Delayed-reset timer ownership.

The controller never talks to an event loop directly. It schedules
through a ``Scheduler`` (the host's timer facility) and keeps at most one
outstanding handle in a ``PendingTimer``. Each arming bumps a generation
counter, so a callback that fires after being superseded or cancelled is
ignored.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol

import structlog

from fault_boundary.exceptions import SchedulerUnavailableError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class TimerHandle(Protocol):
    """Anything that can cancel a scheduled callback."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Host timer facility; ``asyncio`` event loops satisfy it directly."""

    def call_later(
        self, delay: float, callback: Callable[[], object]
    ) -> TimerHandle: ...


# ---------------------------------------------------------------------------
# Schedulers
# ---------------------------------------------------------------------------


class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop.

    When no loop is given, the running loop is looked up at scheduling
    time, so the scheduler must then be used from inside a coroutine or
    loop callback.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @classmethod
    def for_running_loop(cls) -> AsyncioScheduler:
        """Bind to the running loop.

        Raises:
            SchedulerUnavailableError: If no event loop is running.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            msg = (
                "No running event loop to schedule delayed resets on; "
                "pass a scheduler explicitly."
            )
            raise SchedulerUnavailableError(msg) from exc
        return cls(loop)

    def call_later(
        self, delay: float, callback: Callable[[], object]
    ) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class _ManualTimer:
    __slots__ = ("callback", "cancelled", "due_ms")

    def __init__(self, due_ms: float, callback: Callable[[], object]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic virtual-time scheduler.

    Time only moves when ``advance`` or ``run_all`` is called. Callbacks
    fire in due-time order, ties in scheduling order.
    """

    def __init__(self) -> None:
        self._now_ms: float = 0.0
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    @property
    def now_ms(self) -> float:
        return self._now_ms

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def call_later(self, delay: float, callback: Callable[[], object]) -> _ManualTimer:
        timer = _ManualTimer(self._now_ms + delay * 1000.0, callback)
        heapq.heappush(self._queue, (timer.due_ms, next(self._seq), timer))
        return timer

    def next_due_ms(self) -> float | None:
        """Virtual time of the next live timer, if any."""
        self._drop_cancelled()
        if not self._queue:
            return None
        return self._queue[0][0]

    def advance(self, ms: float) -> int:
        """Move time forward by ``ms`` and fire every timer that comes due.

        Returns:
            Number of callbacks fired.
        """
        target = self._now_ms + ms
        fired = 0
        while True:
            due = self.next_due_ms()
            if due is None or due > target:
                break
            _, _, timer = heapq.heappop(self._queue)
            self._now_ms = max(self._now_ms, timer.due_ms)
            timer.callback()
            fired += 1
        self._now_ms = target
        return fired

    def run_all(self) -> int:
        """Fire timers until none remain, jumping time as needed."""
        fired = 0
        while (due := self.next_due_ms()) is not None:
            fired += self.advance(due - self._now_ms)
        return fired

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)


# ---------------------------------------------------------------------------
# Single-slot timer
# ---------------------------------------------------------------------------


class PendingTimer:
    """Owns the one delayed-reset timer a controller may have."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None
        self._delay_ms: int | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def delay_ms(self) -> int | None:
        """Delay the pending timer was armed with, if one is pending."""
        return self._delay_ms

    def arm(self, delay_ms: int, callback: Callable[[], None]) -> None:
        """Cancel any pending timer, then schedule ``callback`` after ``delay_ms``."""
        self.cancel()
        self._generation += 1
        generation = self._generation

        def _fire() -> None:
            if generation != self._generation:
                logger.debug("stale_timer_ignored", generation=generation)
                return
            self._handle = None
            self._delay_ms = None
            callback()

        self._handle = self._scheduler.call_later(delay_ms / 1000.0, _fire)
        self._delay_ms = delay_ms

    def cancel(self) -> bool:
        """Cancel the pending timer. Safe to call when nothing is pending.

        Returns:
            True if a timer was cancelled.
        """
        self._generation += 1
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._delay_ms = None
        return True

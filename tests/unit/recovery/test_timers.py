"""Unit tests for schedulers and the single-slot pending timer."""

from __future__ import annotations

import asyncio

import pytest

from fault_boundary.exceptions import SchedulerUnavailableError
from fault_boundary.recovery import AsyncioScheduler, ManualScheduler, PendingTimer


class TestManualScheduler:
    """Virtual-time callback scheduling."""

    def test_fires_only_when_due(self) -> None:
        scheduler = ManualScheduler()
        fired: list[str] = []
        scheduler.call_later(1.0, lambda: fired.append("a"))

        assert scheduler.advance(999) == 0
        assert fired == []
        assert scheduler.advance(1) == 1
        assert fired == ["a"]
        assert scheduler.now_ms == 1000

    def test_fires_in_due_order(self) -> None:
        scheduler = ManualScheduler()
        fired: list[str] = []
        scheduler.call_later(2.0, lambda: fired.append("late"))
        scheduler.call_later(1.0, lambda: fired.append("early"))

        scheduler.advance(5000)

        assert fired == ["early", "late"]

    def test_cancelled_timer_never_fires(self) -> None:
        scheduler = ManualScheduler()
        fired: list[str] = []
        handle = scheduler.call_later(1.0, lambda: fired.append("x"))
        handle.cancel()

        assert scheduler.pending_count == 0
        assert scheduler.advance(5000) == 0
        assert fired == []

    def test_callbacks_can_schedule_more_work(self) -> None:
        scheduler = ManualScheduler()
        fired: list[float] = []

        def first() -> None:
            fired.append(scheduler.now_ms)
            scheduler.call_later(0.5, lambda: fired.append(scheduler.now_ms))

        scheduler.call_later(1.0, first)

        assert scheduler.run_all() == 2
        assert fired == [1000, 1500]

    def test_next_due(self) -> None:
        scheduler = ManualScheduler()
        assert scheduler.next_due_ms() is None
        scheduler.call_later(0.25, lambda: None)
        assert scheduler.next_due_ms() == 250


class TestPendingTimer:
    """At most one outstanding timer."""

    def test_arm_schedules_callback(self) -> None:
        scheduler = ManualScheduler()
        timer = PendingTimer(scheduler)
        fired: list[int] = []

        timer.arm(1000, lambda: fired.append(1))

        assert timer.pending
        assert timer.delay_ms == 1000
        scheduler.advance(1000)
        assert fired == [1]
        assert not timer.pending
        assert timer.delay_ms is None

    def test_rearm_replaces_previous(self) -> None:
        scheduler = ManualScheduler()
        timer = PendingTimer(scheduler)
        fired: list[str] = []

        timer.arm(1000, lambda: fired.append("first"))
        timer.arm(2000, lambda: fired.append("second"))

        assert scheduler.pending_count == 1
        scheduler.run_all()
        assert fired == ["second"]

    def test_cancel_without_pending_is_noop(self) -> None:
        timer = PendingTimer(ManualScheduler())
        assert timer.cancel() is False
        assert timer.cancel() is False

    def test_cancel_returns_true_once(self) -> None:
        scheduler = ManualScheduler()
        timer = PendingTimer(scheduler)
        timer.arm(10, lambda: None)

        assert timer.cancel() is True
        assert timer.cancel() is False
        assert scheduler.pending_count == 0

    def test_stale_callback_is_ignored(self) -> None:
        """A handle whose cancel() does nothing still cannot fire a stale callback."""

        class _Uncancellable:
            def cancel(self) -> None:
                return None

        callbacks: list[object] = []

        class _LeakyScheduler:
            def call_later(self, delay: float, callback: object) -> _Uncancellable:
                callbacks.append(callback)
                return _Uncancellable()

        timer = PendingTimer(_LeakyScheduler())
        fired: list[str] = []
        timer.arm(10, lambda: fired.append("old"))
        timer.arm(10, lambda: fired.append("new"))

        for callback in callbacks:
            callback()  # type: ignore[operator]

        assert fired == ["new"]


class TestAsyncioScheduler:
    """Scheduling on a real event loop."""

    @pytest.mark.asyncio
    async def test_uses_running_loop(self) -> None:
        fired = asyncio.Event()
        AsyncioScheduler().call_later(0.001, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1.0)

        assert fired.is_set()

    @pytest.mark.asyncio
    async def test_cancelled_handle_does_not_fire(self) -> None:
        fired: list[int] = []
        handle = AsyncioScheduler(asyncio.get_running_loop()).call_later(
            0.001, lambda: fired.append(1)
        )
        handle.cancel()

        await asyncio.sleep(0.01)

        assert fired == []

    def test_requires_running_loop_when_unbound(self) -> None:
        with pytest.raises(RuntimeError):
            AsyncioScheduler().call_later(0.001, lambda: None)

    @pytest.mark.asyncio
    async def test_for_running_loop_binds_current_loop(self) -> None:
        fired = asyncio.Event()
        AsyncioScheduler.for_running_loop().call_later(0.001, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1.0)

        assert fired.is_set()

    def test_for_running_loop_without_loop_raises(self) -> None:
        with pytest.raises(SchedulerUnavailableError, match="pass a scheduler"):
            AsyncioScheduler.for_running_loop()

"""End-to-end recovery cycles on a real asyncio event loop."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from fault_boundary.fallback import FallbackView
from fault_boundary.host import ProtectedRegion
from fault_boundary.recovery import (
    AsyncioScheduler,
    ManualScheduler,
    RecoveryController,
    ResetTrigger,
    RetryPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from conftest import RecordingReporter

pytestmark = pytest.mark.integration

# Same backoff shape as the defaults, scaled down to milliseconds.
FAST_POLICY = RetryPolicy(max_retries=3, base_delay_ms=5, max_delay_ms=50)


def _failing(*messages: str) -> Any:
    queue = list(messages)

    def render(props: Mapping[str, Any]) -> str:
        if queue:
            raise RuntimeError(queue.pop(0))
        return "dashboard"

    return render


async def _wait_for(predicate: Any, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.asyncio
async def test_transient_faults_recover_on_their_own(reporter: RecordingReporter) -> None:
    outputs: list[Any] = []
    region = ProtectedRegion(
        _failing("Failed to fetch", "Loading chunk 4 failed."),
        reporter=reporter,
        policy=FAST_POLICY,
        scheduler=AsyncioScheduler(),
        on_output=outputs.append,
    )

    assert isinstance(region.render(), FallbackView)
    await _wait_for(lambda: region.output == "dashboard")

    assert region.controller.retry_count == 2
    assert len(reporter.calls) == 2
    assert isinstance(outputs[1], FallbackView)
    assert outputs[-1] == "dashboard"
    region.unmount()


@pytest.mark.asyncio
async def test_unmount_makes_pending_reset_unobservable(
    reporter: RecordingReporter,
) -> None:
    region = ProtectedRegion(
        _failing("NetworkError"),
        reporter=reporter,
        policy=FAST_POLICY,
        scheduler=AsyncioScheduler(),
    )
    region.render()
    snapshot = region.controller.state
    assert region.controller.has_pending_timer

    region.unmount()
    await asyncio.sleep(0.05)

    assert region.controller.state is snapshot
    assert isinstance(region.output, FallbackView)


def test_three_retries_then_manual_recovery(reporter: RecordingReporter) -> None:
    """Delays 1000, 2000, 4000 ms, then only a manual reset helps."""
    scheduler = ManualScheduler()
    triggers: list[tuple[float, ResetTrigger]] = []
    controller = RecoveryController(reporter=reporter, scheduler=scheduler)
    controller.add_reset_listener(lambda t, _s: triggers.append((scheduler.now_ms, t)))
    region = ProtectedRegion(
        _failing(*(["ChunkLoadError: stale bundle"] * 4)),
        controller=controller,
    )

    region.render()
    scheduler.run_all()

    assert triggers == [
        (1000, ResetTrigger.AUTOMATIC),
        (3000, ResetTrigger.AUTOMATIC),
        (7000, ResetTrigger.AUTOMATIC),
    ]
    assert controller.failed is True
    assert controller.has_pending_timer is False
    assert region.output.retry_count == 3

    assert region.try_again() == "dashboard"
    assert controller.retry_count == 4


def test_key_change_recovers_logic_fault(reporter: RecordingReporter) -> None:
    scheduler = ManualScheduler()
    region = ProtectedRegion(
        _failing("TypeError: route data missing"),
        reporter=reporter,
        scheduler=scheduler,
        reset_keys=["/routes/1"],
    )

    region.render()
    scheduler.advance(60_000)
    assert region.controller.failed is True

    assert region.update(reset_keys=["/routes/1"]) != "dashboard"
    assert region.update(reset_keys=["/routes/2"]) == "dashboard"
    assert region.controller.retry_count == 1

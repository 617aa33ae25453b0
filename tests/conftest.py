"""Shared pytest fixtures for the fault-boundary test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from fault_boundary.recovery import ManualScheduler, RecoveryController
from fault_boundary.reporting import ReportContext, Severity

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class RecordingReporter:
    """ErrorReporter that keeps every call for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[BaseException, ReportContext, Severity]] = []

    def log_error(
        self,
        fault: BaseException,
        context: ReportContext,
        severity: Severity,
    ) -> None:
        self.calls.append((fault, context, severity))


@pytest.fixture()
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture()
def scheduler() -> ManualScheduler:
    """Virtual-time scheduler starting at t=0."""
    return ManualScheduler()


# ---------------------------------------------------------------------------
# Controller fixtures
# ---------------------------------------------------------------------------


ControllerFactory = Callable[..., RecoveryController]


@pytest.fixture()
def make_controller(
    reporter: RecordingReporter,
    scheduler: ManualScheduler,
) -> ControllerFactory:
    """Build controllers wired to the recording reporter and manual scheduler."""

    def _make(**options: Any) -> RecoveryController:
        options.setdefault("reporter", reporter)
        options.setdefault("scheduler", scheduler)
        return RecoveryController(**options)

    return _make


@pytest.fixture()
def controller(make_controller: ControllerFactory) -> RecoveryController:
    return make_controller()


# ---------------------------------------------------------------------------
# Faults
# ---------------------------------------------------------------------------


class ChunkLoadError(Exception):
    """Stand-in for a stale build-artifact load failure."""


@pytest.fixture()
def chunk_fault() -> Exception:
    return ChunkLoadError("Loading chunk 7 failed.")


@pytest.fixture()
def network_fault() -> Exception:
    return RuntimeError("NetworkError: fetch failed")


@pytest.fixture()
def logic_fault() -> Exception:
    return TypeError("x is undefined")

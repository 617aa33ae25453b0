"""Centralized exception hierarchy for the fault-boundary package.

All package-level exceptions inherit from ``FaultBoundaryError`` so
callers can catch the entire family with a single ``except`` clause.
Faults raised by a protected subtree are never wrapped in these types;
they are captured and reported as-is.
"""

from __future__ import annotations


class FaultBoundaryError(Exception):
    """Base exception for all fault-boundary errors."""


# ---------------------------------------------------------------------------
# Controller errors
# ---------------------------------------------------------------------------


class ControllerTornDownError(FaultBoundaryError):
    """Raised when a torn-down recovery controller is asked to transition."""


class SchedulerUnavailableError(FaultBoundaryError):
    """Raised when no scheduler is given and no event loop is running.

    Pass an explicit scheduler (for example ``AsyncioScheduler(loop)`` or
    ``ManualScheduler()``) to build a controller outside a running loop.
    """


# ---------------------------------------------------------------------------
# Host errors
# ---------------------------------------------------------------------------


class ProtectedRegionError(FaultBoundaryError):
    """Raised when a protected region is used after it has been unmounted."""

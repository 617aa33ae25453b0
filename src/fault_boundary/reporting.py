"""Error reporting sink used by the recovery controller.

The controller only depends on the ``ErrorReporter`` protocol and never
waits on or inspects what the reporter does. ``StructlogErrorReporter``
is the default sink; hosts that ship faults to a tracking service
provide their own.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from fault_boundary.recovery.models import ControllerState

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

RENDER_FAULT_OPERATION = "render-fault"


class Severity(StrEnum):
    """How urgently a reported fault needs attention."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReportContext(BaseModel):
    """Where a reported fault came from."""

    model_config = ConfigDict(frozen=True)

    service: str
    operation: str = RENDER_FAULT_OPERATION


class ErrorReporter(Protocol):
    """Fire-and-forget fault sink."""

    def log_error(
        self,
        fault: BaseException,
        context: ReportContext,
        severity: Severity,
    ) -> None: ...


# ---------------------------------------------------------------------------
# User-submitted reports
# ---------------------------------------------------------------------------


class ErrorReport(BaseModel):
    """Payload produced by a fallback's "report error" action."""

    fault_id: str
    message: str
    error_type: str
    stack: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0, ge=0)
    timestamp: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())


def build_error_report(state: ControllerState) -> ErrorReport | None:
    """Build a report for the fault currently shown, if there is one."""
    record = state.current_fault
    if record is None:
        return None
    stack = record.context.get("stack")
    return ErrorReport(
        fault_id=record.fault_id,
        message=record.message,
        error_type=record.error_type,
        stack=str(stack) if stack else None,
        context={k: v for k, v in record.context.items() if k != "stack"},
        retry_count=state.retry_count,
    )


# ---------------------------------------------------------------------------
# Default sink
# ---------------------------------------------------------------------------


class StructlogErrorReporter:
    """Report faults as structured log events."""

    def __init__(self, logger_name: str = "fault_boundary.faults") -> None:
        self._log: structlog.stdlib.BoundLogger = structlog.get_logger(logger_name)

    def log_error(
        self,
        fault: BaseException,
        context: ReportContext,
        severity: Severity,
    ) -> None:
        fields: dict[str, Any] = {
            "service": context.service,
            "operation": context.operation,
            "severity": str(severity),
            "error_type": type(fault).__name__,
            "error": str(fault),
        }
        if severity in {Severity.HIGH, Severity.CRITICAL}:
            self._log.error("fault_reported", exc_info=fault, **fields)
        elif severity is Severity.MEDIUM:
            self._log.warning("fault_reported", **fields)
        else:
            self._log.info("fault_reported", **fields)

    def submit_report(self, report: ErrorReport) -> None:
        self._log.info("error_report_submitted", **report.model_dump())

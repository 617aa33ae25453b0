"""Fallback selection for a failed protected region.

The default fallback is a plain view model; rendering it to a screen is
the host's business.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from fault_boundary.recovery.models import ControllerState

if TYPE_CHECKING:
    from fault_boundary.recovery.controller import RecoveryController

T = TypeVar("T")

FallbackRenderer = Callable[[ControllerState, Callable[[], None]], Any]

_DEFAULT_TITLE = "Something went wrong"
_DEFAULT_MESSAGE = (
    "We're sorry, but something unexpected happened while showing {label}. "
    "The problem has been reported."
)

_DEFAULT_HINTS = (
    "Refreshing the page",
    "Clearing your browser cache",
    "Checking your internet connection",
    "Contacting support if the issue continues",
)


class FallbackAction(StrEnum):
    """Actions a fallback view offers the user."""

    TRY_AGAIN = "try_again"
    RELOAD = "reload"
    GO_HOME = "go_home"
    REPORT = "report"


class FaultDetails(BaseModel):
    """Diagnostic details shown only when the host asks for them."""

    model_config = ConfigDict(frozen=True)

    message: str
    stack: str | None = None


class FallbackView(BaseModel):
    """Default substitute output for a failed region."""

    model_config = ConfigDict(frozen=True)

    title: str = _DEFAULT_TITLE
    message: str
    label: str
    fault_id: str | None = None
    retry_count: int = Field(default=0, ge=0)
    actions: tuple[FallbackAction, ...] = (
        FallbackAction.TRY_AGAIN,
        FallbackAction.RELOAD,
        FallbackAction.GO_HOME,
        FallbackAction.REPORT,
    )
    details: FaultDetails | None = None
    # Shown under "If the problem persists, try:".
    hints: tuple[str, ...] = _DEFAULT_HINTS

    @property
    def retry_caption(self) -> str | None:
        if self.retry_count <= 0:
            return None
        return f"Retry attempts: {self.retry_count}"


def default_fallback(
    state: ControllerState,
    label: str,
    show_details: bool = False,
) -> FallbackView:
    """Build the default fallback for the given controller state."""
    record = state.current_fault
    details = None
    if show_details and record is not None:
        stack = record.context.get("stack")
        details = FaultDetails(message=record.message, stack=str(stack) if stack else None)
    return FallbackView(
        message=_DEFAULT_MESSAGE.format(label=label),
        label=label,
        fault_id=record.fault_id if record is not None else None,
        retry_count=state.retry_count,
        details=details,
    )


def select_view(
    controller: RecoveryController,
    render_subtree: Callable[[], T],
    fallback_view: FallbackRenderer | None = None,
    show_details: bool = False,
) -> T | Any:
    """Choose between the protected subtree and a fallback.

    Args:
        controller: Controller whose state decides the view.
        render_subtree: Renders the protected subtree; only called when
            the region is not failed.
        fallback_view: Custom fallback, called as
            ``fallback_view(state, controller.force_reset)``.
        show_details: Include fault details in the default fallback.

    Returns:
        The subtree output, the custom fallback output, or a ``FallbackView``.
    """
    if not controller.failed:
        return render_subtree()
    return render_fallback(controller, fallback_view, show_details=show_details)


def render_fallback(
    controller: RecoveryController,
    fallback_view: FallbackRenderer | None = None,
    show_details: bool = False,
) -> Any:
    """Render the custom fallback if one is configured, else the default."""
    state = controller.state
    if fallback_view is not None:
        return fallback_view(state, controller.force_reset)
    return default_fallback(state, controller.context_label, show_details=show_details)

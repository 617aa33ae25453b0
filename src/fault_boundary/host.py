"""Reference host for a protected region.

``ProtectedRegion`` owns one render attempt at a time: it calls the
subtree's render function inside a ``try`` block and delivers any fault
to the controller before substituting the fallback. It also feeds every
update cycle's reset keys to the controller and re-renders after resets,
including the ones the retry timer performs on its own.
"""

from __future__ import annotations

import traceback
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import structlog

from fault_boundary.exceptions import ProtectedRegionError
from fault_boundary.fallback import FallbackRenderer, render_fallback, select_view
from fault_boundary.logging import region_logging_context
from fault_boundary.recovery.controller import RecoveryController
from fault_boundary.reporting import ErrorReport, StructlogErrorReporter, build_error_report

if TYPE_CHECKING:
    from types import TracebackType

    from fault_boundary.recovery.models import ControllerState, ResetTrigger

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

RenderFn = Callable[[Mapping[str, Any]], Any]
OutputSink = Callable[[Any], object]

_EMPTY_PROPS: Mapping[str, Any] = MappingProxyType({})


class ProtectedRegion:
    """Renders a subtree behind a recovery controller.

    Args:
        render_subtree: Renders the protected subtree from the current
            props. Raising an ``Exception`` marks the attempt as failed.
        controller: Controller to drive. Built from ``controller_options``
            when omitted.
        fallback_view: Custom fallback, called as
            ``fallback_view(state, force_reset)``.
        show_details: Include fault details in the default fallback.
        on_output: Receives every rendered output, including re-renders
            triggered by timer-driven resets.
        props: Initial props.
        **controller_options: Keyword arguments for ``RecoveryController``.
    """

    def __init__(
        self,
        render_subtree: RenderFn,
        controller: RecoveryController | None = None,
        fallback_view: FallbackRenderer | None = None,
        show_details: bool = False,
        on_output: OutputSink | None = None,
        props: Mapping[str, Any] | None = None,
        **controller_options: Any,
    ) -> None:
        self._render_subtree = render_subtree
        self._controller = controller or RecoveryController(**controller_options)
        self._fallback_view = fallback_view
        self._show_details = show_details
        self._on_output = on_output
        self._props: Mapping[str, Any] = props if props is not None else _EMPTY_PROPS
        self._output: Any = None
        self._rendering = False
        self._mounted = True
        self._controller.add_reset_listener(self._on_reset)

    @property
    def controller(self) -> RecoveryController:
        return self._controller

    @property
    def output(self) -> Any:
        """Output of the most recent render."""
        return self._output

    @property
    def mounted(self) -> bool:
        return self._mounted

    def render(self) -> Any:
        """Make one render attempt and return the subtree or fallback output."""
        self._ensure_mounted()
        self._rendering = True
        try:
            with region_logging_context(self._controller.context_label):
                output = select_view(
                    self._controller,
                    self._attempt_render,
                    self._fallback_view,
                    show_details=self._show_details,
                )
        finally:
            self._rendering = False
        self._output = output
        if self._on_output is not None:
            self._on_output(output)
        return output

    def update(
        self,
        props: Mapping[str, Any] | None = None,
        reset_keys: Sequence[Any] | None = None,
    ) -> Any:
        """Apply new props and reset keys, then re-render.

        Args:
            props: New props; None keeps the current ones.
            reset_keys: The reset-key sequence for this update cycle; None
                keeps the current keys.

        Returns:
            The output of the re-render.
        """
        self._ensure_mounted()
        inputs_changed = False
        if props is not None:
            inputs_changed = dict(props) != dict(self._props)
            self._props = props

        self._rendering = True
        try:
            self._controller.update(reset_keys, inputs_changed=inputs_changed)
        finally:
            self._rendering = False
        return self.render()

    def try_again(self) -> Any:
        """Manual reset followed by a fresh render attempt."""
        self._ensure_mounted()
        self._controller.force_reset()
        return self._output

    def report_error(
        self,
        submit: Callable[[ErrorReport], object] | None = None,
    ) -> ErrorReport | None:
        """Build a report for the fault on screen and hand it to ``submit``.

        Defaults to logging it through ``StructlogErrorReporter``. Returns
        None, without submitting anything, while the region is healthy.
        """
        report = build_error_report(self._controller.state)
        if report is None:
            return None
        sink = submit or StructlogErrorReporter().submit_report
        sink(report)
        return report

    def unmount(self) -> None:
        """Tear the controller down. Idempotent."""
        if not self._mounted:
            return
        self._mounted = False
        self._controller.teardown()

    def __enter__(self) -> ProtectedRegion:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unmount()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _attempt_render(self) -> Any:
        try:
            return self._render_subtree(self._props)
        except Exception as exc:
            self._controller.capture_fault(
                exc,
                {
                    "label": self._controller.context_label,
                    "stack": traceback.format_exc(),
                },
            )
        return render_fallback(
            self._controller,
            self._fallback_view,
            show_details=self._show_details,
        )

    def _on_reset(self, trigger: ResetTrigger, state: ControllerState) -> None:
        # Resets requested from inside render/update are picked up by the
        # render that follows them.
        if self._rendering or not self._mounted:
            return
        logger.debug("region_rerender", trigger=str(trigger), retry_count=state.retry_count)
        self.render()

    def _ensure_mounted(self) -> None:
        if not self._mounted:
            msg = f"Protected region {self._controller.context_label!r} is unmounted."
            raise ProtectedRegionError(msg)

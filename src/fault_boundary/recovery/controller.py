"""Failure isolation and self-recovery state machine for a protected region."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from fault_boundary.exceptions import ControllerTornDownError
from fault_boundary.recovery.keys import reset_keys_changed
from fault_boundary.recovery.models import (
    DEFAULT_CONTEXT_LABEL,
    ControllerState,
    FaultRecord,
    ResetTrigger,
    RetryPolicy,
)
from fault_boundary.recovery.policy import decide_retry
from fault_boundary.recovery.timers import AsyncioScheduler, PendingTimer, Scheduler
from fault_boundary.reporting import (
    ErrorReporter,
    ReportContext,
    Severity,
    StructlogErrorReporter,
)

if TYPE_CHECKING:
    from fault_boundary.config import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

FaultHook = Callable[[BaseException, dict[str, Any]], object]
ResetListener = Callable[[ResetTrigger, ControllerState], object]


class RecoveryController:
    """Captures render faults and decides when a protected region may try again.

    The controller is driven by a host: the host delivers faults from a
    failed render attempt, reports the current reset keys on every update
    and tears the controller down when the region goes away. All calls are
    expected on the host's single event-loop thread.

    Retryable faults (transient resource-loading failures) arm one delayed
    reset with exponential backoff until ``policy.max_retries`` resets have
    happened. Any other fault leaves the region failed until the reset keys
    change or ``force_reset`` is called.

    Without a ``scheduler`` the controller binds to the running asyncio
    loop and raises ``SchedulerUnavailableError`` if there is none.
    """

    def __init__(
        self,
        reporter: ErrorReporter | None = None,
        policy: RetryPolicy | None = None,
        scheduler: Scheduler | None = None,
        on_fault: FaultHook | None = None,
        context_label: str = DEFAULT_CONTEXT_LABEL,
        reset_on_any_input_change: bool = False,
        reset_keys: Sequence[Any] | None = None,
    ) -> None:
        self._reporter = reporter or StructlogErrorReporter()
        self._policy = policy or RetryPolicy()
        self._timer = PendingTimer(scheduler or AsyncioScheduler.for_running_loop())
        self._on_fault = on_fault
        self._context_label = context_label or DEFAULT_CONTEXT_LABEL
        self._reset_on_any_input_change = reset_on_any_input_change
        self._reset_keys: tuple[Any, ...] = tuple(reset_keys or ())
        self._reset_listeners: list[ResetListener] = []
        self._state = ControllerState()
        self._torn_down = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        reporter: ErrorReporter | None = None,
        scheduler: Scheduler | None = None,
        on_fault: FaultHook | None = None,
        reset_keys: Sequence[Any] | None = None,
    ) -> RecoveryController:
        """Build a controller from resolved settings."""
        return cls(
            reporter=reporter,
            policy=settings.recovery.to_policy(),
            scheduler=scheduler,
            on_fault=on_fault,
            context_label=settings.boundary.context_label,
            reset_on_any_input_change=settings.boundary.reset_on_any_input_change,
            reset_keys=reset_keys,
        )

    # ------------------------------------------------------------------
    # Readout
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def failed(self) -> bool:
        return self._state.failed

    @property
    def current_fault(self) -> FaultRecord | None:
        return self._state.current_fault

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def context_label(self) -> str:
        return self._context_label

    @property
    def has_pending_timer(self) -> bool:
        return self._timer.pending

    @property
    def pending_delay_ms(self) -> int | None:
        return self._timer.delay_ms

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def add_reset_listener(self, listener: ResetListener) -> None:
        """Call ``listener(trigger, new_state)`` after every reset."""
        self._reset_listeners.append(listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def capture_fault(
        self,
        fault: BaseException,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Record a fault raised by the protected subtree's render.

        Reports it, invokes the caller hook, then arms a delayed reset if
        the fault is retryable and budget remains. Exceptions raised by the
        hook propagate.
        """
        self._ensure_live("capture_fault")
        self._cancel_timer()

        record = FaultRecord.capture(fault, context, default_label=self._context_label)
        self._state = self._state.model_copy(
            update={"failed": True, "current_fault": record}
        )
        logger.warning(
            "fault_captured",
            region=record.label,
            fault_id=record.fault_id,
            error_type=record.error_type,
            error=record.message,
            retry_count=self._state.retry_count,
        )

        self._reporter.log_error(
            fault,
            ReportContext(service=record.label),
            Severity.HIGH,
        )
        if self._on_fault is not None:
            self._on_fault(fault, dict(record.context))

        decision = decide_retry(record.message, self._state.retry_count, self._policy)
        if decision.delay_ms is None:
            logger.info(
                "retry_skipped",
                region=record.label,
                fault_id=record.fault_id,
                fault_class=str(decision.fault_class),
                retry_count=self._state.retry_count,
            )
            return

        self._timer.arm(decision.delay_ms, self._on_timer_fired)
        logger.info(
            "retry_scheduled",
            region=record.label,
            fault_id=record.fault_id,
            delay_ms=decision.delay_ms,
            attempt=self._state.retry_count + 1,
            max_retries=self._policy.max_retries,
        )

    def reset(self, trigger: ResetTrigger = ResetTrigger.MANUAL) -> None:
        """Clear the failure so the host renders the subtree again.

        Every reset counts against the retry budget, whatever triggered it.
        """
        self._ensure_live("reset")
        self._cancel_timer()
        self._state = ControllerState(
            failed=False,
            current_fault=None,
            retry_count=self._state.retry_count + 1,
            last_reset_at=datetime.now(tz=UTC),
        )
        logger.info(
            "boundary_reset",
            region=self._context_label,
            trigger=str(trigger),
            retry_count=self._state.retry_count,
        )
        for listener in list(self._reset_listeners):
            listener(trigger, self._state)

    def force_reset(self) -> None:
        """Manual reset, meant to be wired to a "try again" action."""
        self.reset(ResetTrigger.MANUAL)

    def update(
        self,
        reset_keys: Sequence[Any] | None = None,
        *,
        inputs_changed: bool = False,
    ) -> ResetTrigger | None:
        """Process one host update cycle.

        Args:
            reset_keys: The current reset-key sequence, remembered for the
                next comparison. None keeps the previous keys; pass an
                empty sequence to clear them.
            inputs_changed: Whether anything about the host's inputs
                changed; only used when ``reset_on_any_input_change`` is set.

        Returns:
            The trigger of the reset performed, or None.
        """
        self._ensure_live("update")
        previous = self._reset_keys
        if reset_keys is not None:
            self._reset_keys = tuple(reset_keys)

        if not self._state.failed:
            return None
        if reset_keys_changed(previous, self._reset_keys):
            self.reset(ResetTrigger.KEY_CHANGE)
            return ResetTrigger.KEY_CHANGE
        if self._reset_on_any_input_change and inputs_changed:
            self.reset(ResetTrigger.MANUAL)
            return ResetTrigger.MANUAL
        return None

    def cancel_pending_timer(self) -> bool:
        """Cancel the delayed reset, if any. Never raises."""
        return self._cancel_timer()

    def teardown(self) -> None:
        """Cancel the pending timer and retire the controller."""
        if self._torn_down:
            return
        self._cancel_timer()
        self._torn_down = True
        self._reset_listeners.clear()
        logger.debug("controller_torn_down", region=self._context_label)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> bool:
        cancelled = self._timer.cancel()
        if cancelled:
            logger.debug("reset_timer_cancelled", region=self._context_label)
        return cancelled

    def _on_timer_fired(self) -> None:
        if self._torn_down:
            return
        self.reset(ResetTrigger.AUTOMATIC)

    def _ensure_live(self, operation: str) -> None:
        if self._torn_down:
            msg = f"Cannot {operation}: controller for {self._context_label!r} was torn down."
            raise ControllerTornDownError(msg)

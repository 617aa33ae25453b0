"""Recovery controller exports."""

from fault_boundary.recovery.controller import RecoveryController
from fault_boundary.recovery.keys import reset_keys_changed
from fault_boundary.recovery.models import (
    RETRYABLE_MARKERS,
    ControllerState,
    FaultClass,
    FaultRecord,
    ResetTrigger,
    RetryDecision,
    RetryPolicy,
)
from fault_boundary.recovery.policy import (
    backoff_delay_ms,
    classify_fault,
    decide_retry,
    is_retryable,
)
from fault_boundary.recovery.timers import (
    AsyncioScheduler,
    ManualScheduler,
    PendingTimer,
    Scheduler,
)

__all__ = [
    "RETRYABLE_MARKERS",
    "AsyncioScheduler",
    "ControllerState",
    "FaultClass",
    "FaultRecord",
    "ManualScheduler",
    "PendingTimer",
    "RecoveryController",
    "ResetTrigger",
    "RetryDecision",
    "RetryPolicy",
    "Scheduler",
    "backoff_delay_ms",
    "classify_fault",
    "decide_retry",
    "is_retryable",
    "reset_keys_changed",
]

"""Models used by the recovery controller."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fault_boundary.logging import generate_fault_id

DEFAULT_CONTEXT_LABEL = "component"

# Transient resource-loading failures (stale build artifacts after a deploy,
# dropped connections) that a fresh render attempt can fix.
RETRYABLE_MARKERS: tuple[str, ...] = (
    "ChunkLoadError",
    "Loading chunk",
    "Loading CSS chunk",
    "NetworkError",
    "Failed to fetch",
)


class ResetTrigger(StrEnum):
    """What caused a protected region to be reset."""

    AUTOMATIC = "automatic"
    KEY_CHANGE = "key_change"
    MANUAL = "manual"


class FaultClass(StrEnum):
    """Retry classification of a captured fault."""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"
    EXHAUSTED = "exhausted"


def describe_fault(fault: BaseException) -> str:
    """Return the text a fault is classified by.

    The exception class name is prefixed unless the message already
    starts with it, so ``ChunkLoadError("Loading chunk 7 failed")`` and
    ``RuntimeError("ChunkLoadError: ...")`` both carry the marker.
    """
    name = type(fault).__name__
    text = str(fault)
    if not text:
        return name
    if text.startswith(name):
        return text
    return f"{name}: {text}"


class FaultRecord(BaseModel):
    """A fault captured from a failed render attempt."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    fault: BaseException
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    fault_id: str = Field(default_factory=generate_fault_id)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @classmethod
    def capture(
        cls,
        fault: BaseException,
        context: dict[str, Any] | None = None,
        default_label: str = DEFAULT_CONTEXT_LABEL,
    ) -> FaultRecord:
        """Build a record, filling in the region label when the host gave none."""
        merged = dict(context or {})
        if not merged.get("label"):
            merged["label"] = default_label
        return cls(fault=fault, message=describe_fault(fault), context=merged)

    @property
    def label(self) -> str:
        return str(self.context.get("label", DEFAULT_CONTEXT_LABEL))

    @property
    def error_type(self) -> str:
        return type(self.fault).__name__


class ControllerState(BaseModel):
    """Immutable snapshot of a recovery controller.

    Every transition produces a new instance; a snapshot held by a caller
    never changes underneath it.
    """

    model_config = ConfigDict(frozen=True)

    failed: bool = False
    current_fault: FaultRecord | None = None
    retry_count: int = Field(default=0, ge=0)
    last_reset_at: datetime | None = None


class RetryPolicy(BaseModel):
    """Automatic retry budget and backoff for a protected region."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=1000, gt=0)
    max_delay_ms: int = Field(default=10_000, gt=0)
    retryable_markers: tuple[str, ...] = RETRYABLE_MARKERS


class RetryDecision(BaseModel):
    """Outcome of evaluating the retry policy for one fault."""

    model_config = ConfigDict(frozen=True)

    fault_class: FaultClass
    delay_ms: int | None = None

    @property
    def should_retry(self) -> bool:
        return self.fault_class is FaultClass.RETRYABLE

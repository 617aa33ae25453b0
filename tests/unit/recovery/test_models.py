"""Unit tests for recovery models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fault_boundary.recovery import ControllerState, FaultRecord, RetryPolicy
from fault_boundary.recovery.models import describe_fault


class _ChunkLoadError(Exception):
    pass


class TestDescribeFault:
    """Classification text for raised faults."""

    def test_prefixes_class_name(self) -> None:
        assert describe_fault(TypeError("x is undefined")) == "TypeError: x is undefined"

    def test_keeps_existing_prefix(self) -> None:
        fault = RuntimeError("RuntimeError: already prefixed")
        assert describe_fault(fault) == "RuntimeError: already prefixed"

    def test_empty_message_uses_class_name(self) -> None:
        assert describe_fault(_ChunkLoadError()) == "_ChunkLoadError"


class TestFaultRecord:
    """Captured fault records."""

    def test_capture_fills_label(self) -> None:
        record = FaultRecord.capture(ValueError("bad"), None, default_label="map")
        assert record.label == "map"
        assert record.error_type == "ValueError"
        assert record.captured_at.tzinfo is not None

    def test_capture_keeps_host_label(self) -> None:
        record = FaultRecord.capture(ValueError("bad"), {"label": "upload"})
        assert record.label == "upload"

    def test_capture_does_not_mutate_context(self) -> None:
        context: dict[str, str] = {}
        FaultRecord.capture(ValueError("bad"), context)
        assert context == {}

    def test_fault_ids_are_unique(self) -> None:
        ids = {FaultRecord.capture(ValueError("x")).fault_id for _ in range(20)}
        assert len(ids) == 20

    def test_is_frozen(self) -> None:
        record = FaultRecord.capture(ValueError("bad"))
        with pytest.raises(ValidationError):
            record.message = "other"  # type: ignore[misc]


class TestControllerState:
    """Immutable controller snapshots."""

    def test_defaults(self) -> None:
        state = ControllerState()
        assert state.failed is False
        assert state.current_fault is None
        assert state.retry_count == 0

    def test_negative_retry_count_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ControllerState(retry_count=-1)

    def test_is_frozen(self) -> None:
        state = ControllerState()
        with pytest.raises(ValidationError):
            state.failed = True  # type: ignore[misc]


class TestRetryPolicy:
    """Policy defaults."""

    def test_defaults(self) -> None:
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.base_delay_ms == 1000
        assert policy.max_delay_ms == 10_000
        assert "Failed to fetch" in policy.retryable_markers

"""Fault classification and exponential backoff for automatic resets."""

from __future__ import annotations

from collections.abc import Iterable

from fault_boundary.recovery.models import (
    RETRYABLE_MARKERS,
    FaultClass,
    RetryDecision,
    RetryPolicy,
)

__all__ = [
    "RETRYABLE_MARKERS",
    "backoff_delay_ms",
    "classify_fault",
    "decide_retry",
    "is_retryable",
]


def is_retryable(message: str, markers: Iterable[str] = RETRYABLE_MARKERS) -> bool:
    """Return True if the fault text contains any retryable marker."""
    return any(marker in message for marker in markers)


def backoff_delay_ms(
    retry_count: int,
    base_delay_ms: int = 1000,
    max_delay_ms: int = 10_000,
) -> int:
    """Delay before the next automatic reset: 1s, 2s, 4s, ... capped."""
    raw = base_delay_ms * 2 ** max(retry_count, 0)
    if raw < max_delay_ms:
        return raw
    return max_delay_ms


def classify_fault(message: str, retry_count: int, policy: RetryPolicy) -> FaultClass:
    """Place a fault in the retry taxonomy.

    Args:
        message: Classification text of the fault.
        retry_count: Resets already performed by the controller.
        policy: Retry budget and allow-list.

    Returns:
        ``RETRYABLE`` when the fault matches the allow-list and budget
        remains, ``EXHAUSTED`` when it matches but the budget is spent,
        ``NON_RETRYABLE`` otherwise.
    """
    if not is_retryable(message, policy.retryable_markers):
        return FaultClass.NON_RETRYABLE
    if retry_count >= policy.max_retries:
        return FaultClass.EXHAUSTED
    return FaultClass.RETRYABLE


def decide_retry(message: str, retry_count: int, policy: RetryPolicy) -> RetryDecision:
    """Classify a fault and, if retryable, compute the reset delay."""
    fault_class = classify_fault(message, retry_count, policy)
    if fault_class is not FaultClass.RETRYABLE:
        return RetryDecision(fault_class=fault_class)
    return RetryDecision(
        fault_class=fault_class,
        delay_ms=backoff_delay_ms(
            retry_count,
            base_delay_ms=policy.base_delay_ms,
            max_delay_ms=policy.max_delay_ms,
        ),
    )

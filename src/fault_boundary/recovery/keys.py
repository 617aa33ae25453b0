"""Reset-key comparison between consecutive host updates."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


def reset_keys_changed(
    previous: Sequence[Any] | None,
    current: Sequence[Any] | None,
) -> bool:
    """Return True if the reset-key sequence differs from the previous one.

    Elements are compared index by index, identity first and then
    ``!=``. Sequences of different lengths always count as changed.
    ``None`` is treated as an empty sequence. Two distinct NaN objects
    compare unequal, so swapping one NaN key for another counts as a change;
    the same NaN object does not.
    """
    prev = tuple(previous or ())
    curr = tuple(current or ())
    if len(prev) != len(curr):
        return True
    return any(a is not b and a != b for a, b in zip(prev, curr, strict=True))

"""fault-boundary: fault isolation and self-recovery for protected render regions."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fault-boundary")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]

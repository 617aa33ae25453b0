"""structlog configuration and fault identifiers.

Provides fault ID generation, a region-scoped logging context manager,
and structured log configuration for console or JSON output with
optional file logging.
"""

from __future__ import annotations

import logging
import secrets
import string
import sys
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

# ---------------------------------------------------------------------------
# Fault IDs
# ---------------------------------------------------------------------------

_BASE36 = string.digits + string.ascii_lowercase
_FAULT_ID_SUFFIX_LENGTH = 9


def generate_fault_id() -> str:
    """Generate an identifier for a captured fault.

    Returns:
        A string of the form ``error_<epoch-ms>_<9 base36 chars>``, short
        enough to read aloud from a fallback screen.
    """
    millis = int(time.time() * 1000)
    suffix = "".join(
        secrets.choice(_BASE36) for _ in range(_FAULT_ID_SUFFIX_LENGTH)
    )
    return f"error_{millis}_{suffix}"


# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
    session_id: str | None = None,
) -> None:
    """Configure structlog for the application.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: ``"console"`` for human-readable or ``"json"`` for
            machine-parseable output.
        log_file: Optional file path for log output (in addition to stderr).
        session_id: Optional ID bound to every log entry, e.g. the host's
            page or process session.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_upper = level.upper()
    if level_upper not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)

    numeric_level = getattr(logging, level_upper)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    if session_id:
        structlog.contextvars.bind_contextvars(session_id=session_id)


# ---------------------------------------------------------------------------
# Region logging context manager
# ---------------------------------------------------------------------------


@contextmanager
def region_logging_context(
    label: str,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind a protected region's label to every log entry in the block.

    Values bound by an enclosing region are restored on exit, so nested
    regions log under their own label.

    Args:
        label: Human-readable name of the protected region.
        **extra: Additional key-value pairs to bind.

    Yields:
        A structlog logger named after the region.

    Example::

        with region_logging_context("map") as log:
            log.info("render_attempt")
    """
    with structlog.contextvars.bound_contextvars(region=label, **extra):
        log: structlog.stdlib.BoundLogger = structlog.get_logger(f"region.{label}")
        yield log

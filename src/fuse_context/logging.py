from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

LOGGER_NAME = "fuse_context"


def _make_handler(filename: str | Path | None) -> logging.Handler:
    if filename:
        return logging.FileHandler(str(filename), encoding="utf-8")
    return logging.StreamHandler(sys.stderr)


def setup_logging(filename: str | Path | None = None, *, level: int = logging.INFO) -> structlog.BoundLogger:
    """Route fuse_context events as JSON lines to stderr, or to `filename`.

    Only the ``fuse_context`` stdlib logger is touched. Calling again swaps its
    handler, which is how ``--log-file`` redirects a run after import.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level emitted.

    Returns:
        A structlog logger bound to the ``fuse_context`` logger.
    """
    target = logging.getLogger(LOGGER_NAME)
    for previous in target.handlers[:]:
        target.removeHandler(previous)
        previous.close()
    handler = _make_handler(filename)
    handler.setFormatter(logging.Formatter("%(message)s"))
    target.addHandler(handler)
    target.setLevel(level)
    target.propagate = False

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(LOGGER_NAME)


logger = setup_logging()

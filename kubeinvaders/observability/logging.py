"""Structured logging for the relay.

Every module takes its logger from :func:`get_logger`, which binds the
``component`` key (``relay.manager``, ``cluster.watcher``...).  Output is
one JSON object per line on stderr; uvicorn's own handlers are disabled in
``app.py`` so nothing else writes to the stream.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(level: str = "info") -> None:
    """Configure structlog for JSON output to stderr at *level*."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name and any extra *context*.

    ``get_logger("cluster.watcher", generation=3)`` tags every line the
    watcher of generation 3 writes.
    """
    return structlog.get_logger(component=component, **context)  # type: ignore[return-value]

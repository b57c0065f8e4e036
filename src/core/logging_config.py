"""Structured logging configuration.

Every module logs snake_case events with keyword fields, rendered as JSON
lines through structlog. The level threshold comes from LoadoutConfig and
is applied by the service and reaches loggers that already exist;
modules only call ``get_logger``.
"""

from __future__ import annotations

from typing import Any

import structlog

LOG_LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}
DEFAULT_LOG_LEVEL = "info"

_configured_level: str | None = None


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure structlog processors and the level threshold.

    Args:
        level: One of ``LOG_LEVELS``.
    """
    global _configured_level
    if _configured_level == level:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVELS[level]),
    )
    _configured_level = level


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    if _configured_level is None:
        configure_logging()
    return structlog.get_logger(name)

"""Structured logging setup for the planner.

Every module logs through ``structlog.get_logger(__name__)`` with snake_case
event names and key/value context. ``configure_logging`` wires structlog to
the standard library once per process. Log lines go to stderr because the
CLI prints its analysis as JSON on stdout.

Context such as the planning session id or the task being processed is held
in contextvars, so it follows asyncio tasks and is merged into every line.

Example:
    >>> from src.log_config import configure_logging, get_logger
    >>> configure_logging(level="INFO")
    >>> logger = get_logger(__name__)
    >>> logger.info("plan_loaded", task_count=12)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Applied before rendering, in order
SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and the standard library root logger.

    Calling it again replaces the previous configuration, so the CLI can
    reconfigure once the config file has been read.

    Args:
        level: Level name, case-insensitive (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines (True) or coloured console output (False)

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        msg = f"Invalid log level: {level}"
        raise ValueError(msg)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
        force=True,
    )

    renderer: Any
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[*SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually named after the calling module."""
    return structlog.get_logger(name)


def bind_correlation_id(correlation_id: str) -> None:
    """Tag every following log line with the planning session id."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def unbind_correlation_id() -> None:
    structlog.contextvars.unbind_contextvars("correlation_id")


def bind_context(**kwargs: Any) -> None:
    """Bind key/value pairs to the logging context.

    Args:
        **kwargs: Context to merge into subsequent log lines
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove the named keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind context for the duration of a block.

    Example:
        >>> with bound_context(task_id="api", batch_index=1):
        ...     logger.info("task_started")  # includes task_id and batch_index
    """
    bind_context(**kwargs)
    try:
        yield
    finally:
        unbind_context(*kwargs)


def clear_context() -> None:
    """Drop all context variables."""
    structlog.contextvars.clear_contextvars()

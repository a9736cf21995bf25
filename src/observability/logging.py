"""
Structured logging for the alert engine using structlog.

JSON lines in production, coloured console output elsewhere. Sweeps bind
their cadence with ``sweep_context`` so every line a sweep emits, from
the scheduler down to the repositories, carries it.
"""

import enum
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from src.config.settings import get_settings

_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg")


def _enum_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Log ``Severity.HIGH`` as ``HIGH`` rather than its repr."""
    for key, value in event_dict.items():
        if isinstance(value, enum.Enum):
            event_dict[key] = value.value
    return event_dict


def setup_logging(json_logs: bool | None = None) -> None:
    """
    Configure structlog and route stdlib logging through the same stream.

    Args:
        json_logs: Force JSON output on or off; defaults to production-only.
    """
    settings = get_settings()
    if json_logs is None:
        json_logs = settings.is_production

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _enum_values,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Repositories and channels log through the stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def sweep_context(**kwargs) -> Iterator[None]:
    """
    Bind fields to every log line emitted inside the block.

    Usage:
        with sweep_context(cadence="evaluation"):
            logger.info("Sweep started")  # carries cadence=evaluation
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield

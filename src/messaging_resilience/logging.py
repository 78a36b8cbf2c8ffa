"""Structured logging for the messaging client.

Every component logs through ``structlog`` with snake_case event names and
keyword fields. Credentials never reach a renderer: ``token`` and
``password`` fields are masked by ``redact_credentials``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Literal, Protocol

import structlog
from structlog.typing import EventDict

LogLevel = Literal["info", "warning", "error", "exception"]

_LEVELS_BY_NAME: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

REDACTED = "***"
_SECRET_FIELDS = frozenset({"token", "password", "authorization"})


class StructuredLogger(Protocol):
    """Anything accepting ``logger.<level>(event, **fields)``."""

    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def error(self, event: str, **kwargs: object) -> None: ...

    def exception(self, event: str, **kwargs: object) -> None: ...


def get_logger(name: str) -> StructuredLogger:
    return structlog.stdlib.get_logger(name)


def get_log_level_value(level: str) -> int:
    """Map a level name such as ``"warning"`` onto its stdlib constant."""
    normalized = level.strip().upper()
    try:
        return _LEVELS_BY_NAME[normalized]
    except KeyError as error:
        choices = ", ".join(sorted(_LEVELS_BY_NAME))
        raise ValueError(f"log_level must be one of: {choices}") from error


def redact_credentials(_: object, __: str, event_dict: EventDict) -> EventDict:
    """Mask bearer tokens and passwords bound as top-level event fields."""
    for key in _SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


@contextmanager
def bind_log_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def _log(logger: StructuredLogger, level: LogLevel, event: str, **fields: object) -> None:
    getattr(logger, level)(event, **fields)


def log_info(logger: StructuredLogger, event: str, **fields: object) -> None:
    _log(logger, "info", event, **fields)


def log_warning(logger: StructuredLogger, event: str, **fields: object) -> None:
    _log(logger, "warning", event, **fields)


def log_error(logger: StructuredLogger, event: str, **fields: object) -> None:
    _log(logger, "error", event, **fields)


def log_exception(logger: StructuredLogger, event: str, **fields: object) -> None:
    """Log at error level with the active exception's traceback attached."""
    _log(logger, "exception", event, **fields)


def _renderer_for_stderr() -> structlog.types.Processor:
    if sys.stderr.isatty():
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_structlog(*, log_level: str) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib records through one stderr handler.

    Safe to call repeatedly; the root handler is replaced each time.
    """
    level_value = get_log_level_value(log_level)
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    foreign_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        redact_credentials,
        timestamper,
    ]
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=foreign_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer_for_stderr(),
            ],
        )
    )
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=level_value,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_credentials,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger("messaging_resilience")

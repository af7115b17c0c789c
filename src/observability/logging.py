"""Structured logging configuration using structlog."""

import logging
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

if TYPE_CHECKING:
    from src.config import Settings

_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_level(level_name: str) -> int:
    """Convert a level name to a logging level, defaulting to INFO."""
    return _LEVELS.get(level_name.upper(), logging.INFO)


def configure_logging(settings: "Settings") -> None:
    """Configure structlog with JSON or console rendering.

    Routes stdlib logging (including redis and uvicorn) through the same
    processors so every line shares one format.

    Args:
        settings: Application settings providing LOG_LEVEL and LOG_FORMAT.
    """
    shared_processors: list[structlog.types.Processor] = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    level = resolve_level(settings.LOG_LEVEL)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ("redis", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_request_context(**context: str) -> None:
    """Bind request-scoped fields to all subsequent log entries."""
    bind_contextvars(**context)


def clear_request_context() -> None:
    """Clear all bound context variables."""
    clear_contextvars()

"""Structured logging configuration using structlog.

The API process and the Celery worker share one setup: JSON lines in
production, colored console output in development or with
``LOG_FORMAT=text``. stdlib loggers (services, routes, third-party) are
routed through the same renderer, so a processing pass reads the same
whichever entry point triggered it.
"""

import logging
import sys
from uuid import uuid4

import structlog
from app.config import get_settings

# Third-party loggers and the level they are clamped to
_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "celery": logging.INFO,
}


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging() -> None:
    """Configure structlog and the root stdlib logger.

    Safe to call more than once; the root handler is replaced.
    """
    settings = get_settings()
    shared = _shared_processors()

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.SQLALCHEMY_ECHO else logging.WARNING
    )


def bind_pass_context(trigger: str) -> str:
    """Tag every log line of the current processing pass.

    Returns the generated ``pass_id``. Call ``clear_pass_context`` when
    the pass ends.
    """
    pass_id = uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(pass_id=pass_id, trigger=trigger)
    return pass_id


def clear_pass_context() -> None:
    structlog.contextvars.unbind_contextvars("pass_id", "trigger")

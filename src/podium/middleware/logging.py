"""Logging setup shared by the API process and the progression worker."""

import logging
import sys

import structlog

from podium.config import Settings

# Library loggers kept at WARNING unless debug is on
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "arq.jobs")


def add_component(component: str) -> structlog.types.Processor:
    """Processor stamping every event with the emitting process."""

    def processor(_logger: object, _method: str, event_dict: dict) -> dict:
        event_dict.setdefault("component", component)
        return event_dict

    return processor


def resolve_level(settings: Settings) -> int:
    if settings.debug:
        return logging.DEBUG
    return getattr(logging, settings.log_level.upper(), logging.INFO)


def setup_logging(settings: Settings, component: str = "api") -> None:
    """Configure structlog and the stdlib root logger.

    Services log through stdlib ``logging``; request and error logs go
    through structlog with the request context merged in.
    """
    level = resolve_level(settings)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_component(component),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if settings.debug else logging.WARNING)

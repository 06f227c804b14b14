"""Structured logging for NewTube using structlog.

JSON lines in production, colored console lines everywhere else. The
acquisition engine binds the ids it works on (``video_id``,
``channel_url``) with ``log_context`` so every line logged underneath,
including the fetch tool's retries, carries them without threading the
ids through each call.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from newtube.core.config import get_config

# Chatty at DEBUG; kept at WARNING so acquisition logs stay readable.
QUIET_LOGGERS = ("aiosqlite", "urllib3", "celery.utils.functional")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the app name and environment on every event."""
    config = get_config()
    event_dict["app"] = config.app_name
    event_dict["env"] = config.app_env
    return event_dict


@contextmanager
def log_context(**ids: Any) -> Iterator[None]:
    """Bind acquisition ids to every log event in scope.

    ``None`` values are skipped, so callers can pass optional ids such as
    a channel URL that is not known for an on-demand video.

    Example:
        >>> with log_context(video_id="dQw4w9WgXcQ", channel_url=None):
        ...     logger.info("Asset stored", asset="format:18")
    """
    bound = {key: value for key, value in ids.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger.

    Example:
        >>> setup_logging()
        >>> logger = get_logger(__name__)
        >>> logger.info("Sweep started", channels=3)
    """
    config = get_config()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, config.log_level),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    if config.is_development:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )

    if config.is_production:
        processors.extend([structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()])
    else:
        processors.extend(
            [structlog.processors.format_exc_info, structlog.dev.ConsoleRenderer(colors=True)]
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for ``name``; pass ids as keyword fields.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Asset fetch failed", video_id="abc123", asset="subtitle:en")
    """
    return structlog.get_logger(name)


__all__ = ["QUIET_LOGGERS", "add_app_context", "get_logger", "log_context", "setup_logging"]

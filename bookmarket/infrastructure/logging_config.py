"""Structured logging setup.

Configures structlog on top of the standard library so every module can
use ``structlog.get_logger()`` with key/value context. Request-scoped
values (the request id) are merged in from contextvars.
"""

import logging
import sys

import structlog

from bookmarket.infrastructure.config import settings


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: Log level name (defaults to settings.log_level).
        json_logs: Render JSON lines instead of console output
            (defaults to settings.log_json).
    """
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    use_json = settings.log_json if json_logs is None else json_logs

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

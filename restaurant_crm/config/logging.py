"""
Logging Configuration

structlog in front of stdlib logging. Application events and records
from third-party loggers (uvicorn, SQLAlchemy, Prefect) pass through the
same processor chain and come out as JSON lines, or as colored console
output when LOG_FORMAT=text.
"""

import logging
import sys
from typing import List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from restaurant_crm.config.settings import get_settings

# Loggers that install their own handlers
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Chatty at INFO; raised to WARNING unless the app itself logs at DEBUG
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "asyncio")


def _pre_chain() -> List:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Route structlog and stdlib logging to stdout.

    Args:
        log_level: Overrides LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    json_output = settings.monitoring.log_format == "json"

    structlog.configure(
        processors=_pre_chain() + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(
        processor=JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True),
        foreign_pre_chain=_pre_chain(),
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False
        server_logger.setLevel(level)

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level_name,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )

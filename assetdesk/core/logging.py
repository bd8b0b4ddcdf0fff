"""
Structured logging setup.

Call ``configure_logging`` once when the application starts. Modules
log through ``structlog.get_logger()`` with an event message plus
key/value context:

    logger.info("Role assigned", user_id=str(user_id), role=role.name)
"""

import logging
import sys

import structlog

from assetdesk.core.config import Settings
from assetdesk.utils.context import add_request_context


def configure_logging(settings: Settings) -> None:
    """Configure stdlib logging and structlog for the given settings."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    renderer: structlog.types.Processor
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_request_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

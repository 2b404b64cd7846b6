"""Structured logging setup shared by the server and the reindex CLI."""
import logging

import structlog

from docqa import config


def configure_logging(level: str = None) -> None:
    """Configure stdlib logging and structlog with a JSON renderer.

    Args:
        level: Log level name (default from config)
    """
    level = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s", level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

"""Logging configuration with Rich formatting.

setup_logging() is called once on app startup, get_logger() gives module loggers.
"""

import logging
from rich.logging import RichHandler
from app.core.config import settings


def setup_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)]
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str):
    return logging.getLogger(name)

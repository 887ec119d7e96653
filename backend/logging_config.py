"""Centralized logging configuration."""

import logging

from config import settings

# Library loggers that drown out relink and sync messages at INFO.
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic.runtime.migration",
    "httpx",
    "httpcore",
    "urllib3",
)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets the root level from settings.LOG_LEVEL. Application loggers
    (``services.*``, ``api.*``, ``integrations.*``) keep no level of their
    own and inherit it; the loggers in QUIET_LOGGERS are pinned to WARNING.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

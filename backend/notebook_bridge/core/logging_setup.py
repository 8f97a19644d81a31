"""
Logging setup for the bridge.

structlog renders on top of the standard library logging module: a console
renderer in development, JSON everywhere else.
"""
import logging

import structlog

from notebook_bridge.core.config import settings


def configure_logging(level: str = None, app_env: str = None) -> None:
    """Configure stdlib logging and structlog for the process."""
    level_name = (level or settings.LOG_LEVEL).upper()
    env = (app_env or settings.APP_ENV).lower()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
    )

    sql_log_level = getattr(logging, settings.SQL_LOG_LEVEL.upper(), logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(sql_log_level)
    logging.getLogger("sqlalchemy.pool").setLevel(sql_log_level)

    renderer = structlog.dev.ConsoleRenderer() if env == "dev" else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

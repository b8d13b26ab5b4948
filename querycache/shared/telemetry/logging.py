"""Logging configuration for services embedding the query cache."""

import logging
import sys

from querycache.core.config import get_settings

# Driver loggers that are chatty at INFO; kept at WARNING unless debugging.
_DRIVER_LOGGERS = ("aiomysql", "redis", "sqlalchemy.pool")


def setup_logging(level: int | None = None) -> None:
    """Configure process-wide logging on stdout.

    DEBUG when settings.debug is True, otherwise INFO; an explicit level
    wins. Driver loggers stay at WARNING outside debug mode. SQL echo is
    controlled separately by DB_ECHO.
    """
    debug = get_settings().debug
    if level is None:
        level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in _DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

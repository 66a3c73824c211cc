"""
Logging for polycache.

structlog on top of the stdlib ``polycache`` logger. Events are dotted
names (``cache.set``, ``memcached.cas_retry``) with key/value context.
"""

import logging

import structlog

from polycache.settings import CacheSettings, LogLevel, get_settings

LOGGER_NAME = "polycache"


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(settings: CacheSettings | None = None) -> None:
    """
    Configure structlog from cache settings.

    Safe to call again, e.g. after changing ``CACHE_LOG_LEVEL``.
    """
    settings = settings or get_settings()
    level = LogLevel(settings.log_level).value
    logging.getLogger(LOGGER_NAME).setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(settings.log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = LOGGER_NAME) -> structlog.stdlib.BoundLogger:
    """Get a logger under the ``polycache`` hierarchy."""
    return structlog.get_logger(name)


setup_logging()

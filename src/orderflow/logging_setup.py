"""structlog configuration for the orderflow entry points."""

import logging
import sys

import structlog

from .errors import ConfigurationError


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog events to stderr with a console renderer.

    Raises:
        ConfigurationError: If ``level`` isn't a standard logging level name.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigurationError("log_level", level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        # Look up sys.stderr per logger so redirected streams are honored.
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

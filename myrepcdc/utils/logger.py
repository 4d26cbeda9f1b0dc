"""
Logging utilities for MySQL binlog CDC

Log records are rendered by structlog and written by the stdlib "myrepcdc"
logger. Binlog events go to stdout in the CLI, so records default to stderr.
"""

import logging
import sys
from typing import Any, TextIO

import structlog


LOGGER_NAME = "myrepcdc"

# Added to every record, from any thread, unless the record sets the key itself
DEFAULT_CONTEXT = {'app': LOGGER_NAME}


def add_default_context(logger, method_name, event_dict):
    for key, value in DEFAULT_CONTEXT.items():
        event_dict.setdefault(key, value)
    return event_dict


def setup_logging(level: str = "INFO", format_type: str = "json", stream: TextIO = None) -> None:
    """
    Setup structured logging for the replication client

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Output format (json, console)
        stream: Destination of rendered records, stderr by default
    """
    processors = [
        add_default_context,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
    ]

    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Module loggers (myrepcdc.engine, myrepcdc.services.*) propagate here
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter('%(message)s'))
    package_logger.addHandler(handler)
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    package_logger.propagate = False


def get_logger(name: str = None, **context: Any) -> structlog.BoundLogger:
    """
    Get a structured logger, optionally bound to extra context

    Args:
        name: Logger name, defaults to the package logger
        context: Key/value pairs attached to every record of this logger
    """
    logger = structlog.get_logger(name or LOGGER_NAME)
    if context:
        logger = logger.bind(**context)
    return logger

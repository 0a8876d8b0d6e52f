"""Centralized logging configuration for the synchronizer."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog

# Loggers used by the Elasticsearch client stack
DESTINATION_CLIENT_LOGGERS = ("elasticsearch", "elastic_transport")


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
    destination_client_logging: bool = False,
) -> None:
    """
    Configure structured logging for the synchronizer.

    Sets up structlog on top of the standard library with a JSON renderer
    (or a colored console renderer for development), ISO UTC timestamps and
    call-site information. The Elasticsearch client's own loggers are kept
    at WARNING unless ``destination_client_logging`` is enabled.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON logs. If False, use console format.
        log_file: Optional path to a rotating log file (10MB x 5).
        destination_client_logging: Log destination client requests at DEBUG.

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> log = structlog.stdlib.get_logger()
        >>> log.info("cycle_started", index="orders")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stdout,
    )
    logging.root.setLevel(numeric_level)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setLevel(numeric_level)
        logging.root.addHandler(file_handler)

    client_level = logging.DEBUG if destination_client_logging else logging.WARNING
    for name in DESTINATION_CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.stdlib.get_logger(name)

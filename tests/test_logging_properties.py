"""Property-based tests for logging configuration.

Log entries must carry a timestamp, a level and the event name, and the
Elasticsearch client's own loggers stay quiet unless asked for.
"""

import json
import logging
from datetime import datetime
from io import StringIO

import pytest
import structlog
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from watermark_sync.utils.logging_config import (
    DESTINATION_CLIENT_LOGGERS,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()
    for name in DESTINATION_CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


@given(
    log_level=st.sampled_from(["WARNING", "ERROR", "CRITICAL"]),
    message=st.text(min_size=1, max_size=200),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_error_log_format_contains_required_fields(log_level: str, message: str) -> None:
    """Every JSON log entry has timestamp, level, event and bound context."""
    log_buffer = StringIO()
    logging.basicConfig(format="%(message)s", level=logging.DEBUG, stream=log_buffer, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    log = structlog.stdlib.get_logger("test_logger")
    getattr(log, log_level.lower())("sync_cycle_failed", error=message, index="songs")

    entry = json.loads(log_buffer.getvalue().strip().splitlines()[-1])

    assert entry["event"] == "sync_cycle_failed"
    assert entry["level"] == log_level.lower()
    assert entry["error"] == message
    assert entry["index"] == "songs"
    datetime.fromisoformat(entry["timestamp"].replace("Z", "+00:00"))


def test_json_renderer_is_last_processor():
    configure_logging(log_level="INFO", json_logs=True)

    processors = structlog.get_config()["processors"]

    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    assert structlog.contextvars.merge_contextvars in processors


def test_console_renderer_for_development():
    configure_logging(log_level="DEBUG", json_logs=False)

    assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)
    assert logging.root.level == logging.DEBUG


@pytest.mark.parametrize(
    "client_logging, expected", [(False, logging.WARNING), (True, logging.DEBUG)]
)
def test_destination_client_log_level(client_logging: bool, expected: int):
    configure_logging(destination_client_logging=client_logging)

    for name in DESTINATION_CLIENT_LOGGERS:
        assert logging.getLogger(name).level == expected


def test_log_file_handler(tmp_path):
    log_file = tmp_path / "sync.log"

    configure_logging(log_file=str(log_file))
    try:
        handlers = [h for h in logging.root.handlers if getattr(h, "baseFilename", None)]
        assert any(h.baseFilename == str(log_file) for h in handlers)
    finally:
        for handler in list(logging.root.handlers):
            if getattr(handler, "baseFilename", None) == str(log_file):
                logging.root.removeHandler(handler)
                handler.close()


def test_get_logger_returns_bound_logger():
    configure_logging()

    log = get_logger("watermark_sync.test")

    assert hasattr(log, "info")
    assert hasattr(log, "bind")

"""Structured JSON logging for the metering package.

Logs go to stderr as JSON lines so the host CLI's stdout stays untouched.
Optional file output via REVENIUM_METERING_AUDIT_LOG_FILE.

Anything that may carry transport error text is redacted by the caller
before it reaches a logger.
"""

import json
import logging
import secrets
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone

from gemini_metering.config.settings import get_settings

LOGGER_NAME = "gemini_metering.audit"

# Session-scoped context for correlating log entries of one metered call
session_id_var: ContextVar[str] = ContextVar("session_id", default="")


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "session_id": session_id_var.get(""),
        }
        if hasattr(record, "audit_data"):
            log_entry.update(record.audit_data)
        return json.dumps(log_entry, default=str)


def setup_logging() -> None:
    """Configure the metering logger with JSON output."""
    settings = get_settings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.WARNING))
    logger.handlers.clear()

    formatter = JSONFormatter()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.audit_log_file:
        file_handler = logging.FileHandler(settings.audit_log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def generate_session_id() -> str:
    """Session id for synthetic connectivity events: test-<base36 ms>-<random>."""
    return f"test-{_base36(int(time.time() * 1000))}-{_base36(secrets.randbits(31))[:6]}"


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


class RequestTimer:
    """Context manager to measure request latency."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

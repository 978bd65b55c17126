"""
Logging Setup Module
====================

JSON logging to stdout, one object per line.

Log format:
    {
        "timestamp": "2024-01-27T12:00:00.000+00:00",
        "level": "INFO",
        "module": "pollers",
        "message": "sales_alert_sent",
        "category": "sales",
        "contract": "0x..."
    }

Fields passed via `extra=` are merged into the object.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
})

NOISY_LOGGERS = ("asyncio", "aiohttp.access", "redis", "uvicorn", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """
    Formats records as JSON objects.

    Extra fields that orjson cannot serialize are converted to strings.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "module": record.module,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in STANDARD_ATTRS and not key.startswith("_"):
                log_entry[key] = self._make_serializable(value)

        return orjson.dumps(log_entry).decode("utf-8")

    def _make_serializable(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): self._make_serializable(v) for k, v in value.items()}
        elif isinstance(value, (list, tuple, set, frozenset)):
            return [self._make_serializable(v) for v in value]
        elif isinstance(value, (str, int, float, bool, type(None))):
            return value
        else:
            return str(value)


class JsonLogHandler(logging.StreamHandler):
    """Stream handler writing JSON lines to stdout."""

    def __init__(self):
        super().__init__(stream=sys.stdout)
        self.setFormatter(JsonFormatter())


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure the root logger for JSON output.

    Existing handlers are removed. Third-party loggers are capped at WARNING.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    json_handler = JsonLogHandler()
    json_handler.setLevel(numeric_level)
    root_logger.addHandler(json_handler)
    root_logger.setLevel(numeric_level)

    # Reduce noise from third-party libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

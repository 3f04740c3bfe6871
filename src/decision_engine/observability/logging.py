"""Structured JSON logging with request correlation."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from decision_engine.observability.context import get_current_request_id


class StructuredLogFormatter(logging.Formatter):
    """
    JSON log formatter with request correlation.

    Outputs logs in JSON format with:
    - Standard log fields (timestamp, level, message, logger)
    - Request context (request_id)
    - Source location
    - Exception information
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_current_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        log_entry["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class RequestContextFilter(logging.Filter):
    """
    Logging filter that adds request context to log records.

    Adds request_id to all log records so plain-text handlers can use
    %(request_id)s.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to the log record."""
        record.request_id = get_current_request_id() or ""
        return True


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    module_levels: dict[str, str] | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Default log level.
        json_format: If True, use JSON format. Otherwise, use standard format.
        module_levels: Per-module log levels (e.g., {"decision_engine.reasoners": "DEBUG"}).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    if json_format:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
        ))

    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    if module_levels:
        for module, mod_level in module_levels.items():
            logging.getLogger(module).setLevel(getattr(logging, mod_level.upper()))

    logging.info(
        f"Logging configured: level={level}, json={json_format}, "
        f"module_levels={module_levels or {}}"
    )

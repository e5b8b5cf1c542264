"""
Structured logging configuration for the SMART backend services client.

Log records are rendered as single-line JSON documents so that token
acquisition events can be collected by any log shipper.
"""

import json
import logging
import sys
import time
from datetime import datetime


class JsonFormatter(logging.Formatter):
    """Render a log record, plus its structured extras, as a JSON document."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }

        for key, value in getattr(record, "extras", {}).items():
            log_data[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(log_data, default=str)


def configure_logging(level="INFO", stream=None):
    """Configure structured JSON logging on the root logger."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    root = logging.getLogger()
    root.setLevel(level)

    if not any(isinstance(handler.formatter, JsonFormatter) for handler in root.handlers):
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)

    return root


def get_logger(name):
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def log_with_context(logger, level, message, **context):
    """Log with additional context as structured fields."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger.log(level, message, extra={"extras": context})


class LogMetrics:
    """Context manager that logs the duration of a code block."""

    def __init__(self, logger, operation_name, **context):
        self.logger = logger
        self.operation_name = operation_name
        self.context = context
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.monotonic()
        log_with_context(self.logger, "debug", f"Starting {self.operation_name}", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.monotonic() - self.start_time

        if exc_type is None:
            log_with_context(
                self.logger,
                "info",
                f"Completed {self.operation_name}",
                duration_seconds=round(self.duration, 3),
                **self.context,
            )
        else:
            log_with_context(
                self.logger,
                "warning",
                f"Failed {self.operation_name}: {exc_val}",
                duration_seconds=round(self.duration, 3),
                error=str(exc_val),
                **self.context,
            )
        return False

"""
Unit tests for structured logging helpers.
"""

import io
import json
import logging
import sys

import pytest

from smart_backend_services.utils.logging import (
    JsonFormatter,
    LogMetrics,
    configure_logging,
    get_logger,
    log_with_context,
)


def _record(logger_name="smart_backend_services.test", message="hello", extras=None):
    record = logging.LogRecord(logger_name, logging.INFO, __file__, 1, message, (), None)
    if extras is not None:
        record.extras = extras
    return record


class TestJsonFormatter:

    def test_renders_json(self):
        record = _record(extras={"fhir_server_url": "https://fhir.example.org/r4"})

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "smart_backend_services.test"
        assert data["fhir_server_url"] == "https://fhir.example.org/r4"
        assert record.msg == "hello"

    def test_renders_exception(self):
        try:
            raise ValueError("bad key")
        except ValueError:
            record = logging.LogRecord("test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert data["exception"] == {"type": "ValueError", "message": "bad key"}


class TestConfigureLogging:

    def test_adds_single_json_handler(self):
        root = logging.getLogger()
        level = root.level
        stream = io.StringIO()
        try:
            configure_logging("WARNING", stream=stream)
            configure_logging("WARNING", stream=stream)

            json_handlers = [h for h in root.handlers if isinstance(h.formatter, JsonFormatter)]
            assert len(json_handlers) == 1

            get_logger("smart_backend_services.test").warning("visible")
            assert json.loads(stream.getvalue().splitlines()[-1])["message"] == "visible"
        finally:
            for handler in list(root.handlers):
                if isinstance(handler.formatter, JsonFormatter):
                    root.removeHandler(handler)
            root.setLevel(level)


class TestLogHelpers:

    def test_log_with_context(self, caplog):
        logger = get_logger("smart_backend_services.test")

        with caplog.at_level(logging.INFO, logger="smart_backend_services.test"):
            log_with_context(logger, "info", "Token obtained", expires_in=300)

        assert caplog.records[0].extras == {"expires_in": 300}

    def test_log_metrics_success(self, caplog):
        logger = get_logger("smart_backend_services.test")

        with caplog.at_level(logging.DEBUG, logger="smart_backend_services.test"):
            with LogMetrics(logger, "token exchange", token_endpoint="https://auth.example.org/token") as metrics:
                pass

        assert metrics.duration is not None
        completed = caplog.records[-1]
        assert completed.getMessage() == "Completed token exchange"
        assert completed.extras["token_endpoint"] == "https://auth.example.org/token"
        assert "duration_seconds" in completed.extras

    def test_log_metrics_failure_propagates(self, caplog):
        logger = get_logger("smart_backend_services.test")

        with caplog.at_level(logging.DEBUG, logger="smart_backend_services.test"):
            with pytest.raises(RuntimeError):
                with LogMetrics(logger, "token exchange"):
                    raise RuntimeError("boom")

        assert caplog.records[-1].levelname == "WARNING"
        assert caplog.records[-1].extras["error"] == "boom"

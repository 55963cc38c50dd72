"""
Tests for logging configuration.
"""

import io
import json
import logging

import pytest
import structlog

from health_companion.utils.logger import configure_logging, get_logger


@pytest.fixture
def log_stream():
    """Configure JSON logging into a buffer; restore the root logger after."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    stream = io.StringIO()

    configure_logging(log_level="INFO", json_format=True, stream=stream)
    yield stream

    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestConfigureLogging:
    """All records share one JSON format."""

    def test_structlog_event(self, log_stream):
        get_logger("conversation").info("Exchange complete", owner_id="alice-uid")

        (record,) = lines(log_stream)
        assert record["event"] == "Exchange complete"
        assert record["owner_id"] == "alice-uid"
        assert record["logger"] == "conversation"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_provider_records_rendered_as_json(self, log_stream):
        logging.getLogger("cloudinary").warning("Retrying upload")

        (record,) = lines(log_stream)
        assert record["event"] == "Retrying upload"
        assert record["logger"] == "cloudinary"
        assert record["level"] == "warning"

    def test_provider_info_suppressed(self, log_stream):
        logging.getLogger("firebase_admin").info("Initialized app")

        assert lines(log_stream) == []

    def test_hindi_not_escaped(self, log_stream):
        get_logger("speech").info("Speech clip created", text="नमस्ते")

        assert "नमस्ते" in log_stream.getvalue()

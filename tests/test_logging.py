"""Tests for logging setup."""

import io
import json
import logging

import pytest

from rustsplice.logging import ROOT_LOGGER, get_logger, setup_logging


@pytest.fixture
def stream():
    """Capture log output; detach the handler afterwards."""
    buffer = io.StringIO()
    yield buffer
    logging.getLogger(ROOT_LOGGER).handlers.clear()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_text_format_with_context(self, stream):
        """Context passed via extra is appended in brackets."""
        setup_logging(logging.INFO, stream=stream)
        get_logger("executor").info("Snippet produced 1 token tree", extra={"snippet": "five"})
        assert stream.getvalue() == (
            "INFO rustsplice.executor: Snippet produced 1 token tree [snippet=five]\n"
        )

    def test_json_format_with_context(self, stream):
        """JSON records carry context as top-level keys."""
        setup_logging(logging.DEBUG, json_format=True, stream=stream)
        get_logger("manifest").debug("Using edition 2021", extra={"path": "Cargo.toml", "returncode": 0})

        record = json.loads(stream.getvalue())
        assert record["logger"] == "rustsplice.manifest"
        assert record["level"] == "DEBUG"
        assert record["message"] == "Using edition 2021"
        assert record["path"] == "Cargo.toml"
        assert record["returncode"] == "0"

    def test_level_filters(self, stream):
        """Records below the configured level are dropped."""
        setup_logging(logging.WARNING, stream=stream)
        get_logger("hook").info("not shown")
        assert stream.getvalue() == ""

    def test_reconfigure_replaces_handler(self, stream):
        """Calling setup_logging again does not duplicate output."""
        setup_logging(logging.INFO, stream=stream)
        setup_logging(logging.INFO, stream=stream)
        get_logger("dump").info("once")
        assert stream.getvalue().count("once") == 1


class TestGetLogger:
    """Tests for get_logger."""

    def test_component_names(self):
        """Component loggers live under the package logger."""
        assert get_logger("codegen").name == "rustsplice.codegen"
        assert get_logger().name == "rustsplice"

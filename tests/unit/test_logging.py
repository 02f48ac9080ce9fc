"""Tests for the flowbridge.logging module."""

from __future__ import annotations

import json
import logging
import os
from unittest.mock import patch

import pytest
import structlog

from flowbridge.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_default(self) -> None:
        """Test default logging configuration (console output)."""
        configure_logging()

        log = structlog.get_logger()
        assert log is not None

    def test_configure_logging_custom_level(self) -> None:
        """Test setting custom log level."""
        configure_logging(level=logging.DEBUG)

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG

    def test_configure_logging_level_from_env(self) -> None:
        """Test log level from FLOWBRIDGE_LOG_LEVEL env var."""
        with patch.dict(os.environ, {"FLOWBRIDGE_LOG_LEVEL": "ERROR"}):
            configure_logging()

            root_logger = logging.getLogger()
            assert root_logger.level == logging.ERROR

    def test_unknown_level_name_falls_back_to_info(self) -> None:
        with patch.dict(os.environ, {"FLOWBRIDGE_LOG_LEVEL": "LOUD"}):
            configure_logging()

            assert logging.getLogger().level == logging.INFO

    def test_single_handler_after_reconfigure(self) -> None:
        """Test that repeated calls replace the stderr handler."""
        configure_logging()
        configure_logging()

        assert len(logging.getLogger().handlers) == 1


class TestJsonOutput:
    """Tests for JSON rendering."""

    def test_json_via_env(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test JSON logging when FLOWBRIDGE_LOG_FORMAT=json."""
        with patch.dict(os.environ, {"FLOWBRIDGE_LOG_FORMAT": "json"}):
            configure_logging(level=logging.INFO)
            get_logger("flowbridge.test").info("expression_translated", path="url")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "expression_translated"
        assert record["path"] == "url"
        assert record["level"] == "info"

    def test_force_json_with_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test bound context variables appear in every record."""
        configure_logging(force_json=True, level=logging.INFO)
        bind_context(workflow="Order sync")
        try:
            get_logger("flowbridge.test").warning("expression_needs_review")
        finally:
            clear_context()

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["workflow"] == "Order sync"

    def test_clear_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(force_json=True, level=logging.INFO)
        bind_context(node="HTTP Request")
        clear_context()
        get_logger("flowbridge.test").warning("after_clear")

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert "node" not in record


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_with_name(self) -> None:
        """Test getting a logger with explicit name."""
        log = get_logger("test.module")
        assert log is not None

    def test_get_logger_binds(self) -> None:
        log = get_logger("test.module").bind(node="Set")
        assert log is not None


class TestClipExpressions:
    """Tests for the expression clipping processor."""

    def test_long_expression_is_clipped(self) -> None:
        from flowbridge.constants import LOG_EXPRESSION_MAX_CHARS
        from flowbridge.logging import clip_expressions

        text = "={{ " + "a" * 500 + " }}"
        event = clip_expressions(None, "warning", {"expression": text})

        assert event["expression"].startswith(text[:LOG_EXPRESSION_MAX_CHARS])
        hidden = len(text) - LOG_EXPRESSION_MAX_CHARS
        assert event["expression"].endswith(f"... ({hidden} more chars)")

    def test_short_and_other_fields_untouched(self) -> None:
        from flowbridge.logging import clip_expressions

        event = clip_expressions(
            None, "info", {"expression": "={{ $json.a }}", "path": "x" * 500}
        )

        assert event == {"expression": "={{ $json.a }}", "path": "x" * 500}

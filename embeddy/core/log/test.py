"""Tests for core logging module."""

import logging
from io import StringIO

import pytest

from .lib import get_logger, resolve_level, setup_logging


class TestLogging:
    """Test core logging API."""

    @pytest.mark.unit
    def test_get_logger(self) -> None:
        """Verify logger instance creation."""
        logger = get_logger("test")
        assert logger.name == "test"
        assert isinstance(logger, logging.Logger)

    @pytest.mark.unit
    def test_get_logger_default_name(self) -> None:
        """Verify default logger name."""
        assert get_logger().name == "embeddy"

    @pytest.mark.unit
    def test_setup_logging_writes_to_stream(self) -> None:
        """Configured stream receives formatted records."""
        stream = StringIO()
        setup_logging(level=logging.DEBUG, stream=stream)
        get_logger("test_setup").debug("test message")

        output = stream.getvalue()
        assert "test_setup - DEBUG - test message" in output

    @pytest.mark.unit
    def test_setup_logging_respects_level(self) -> None:
        """Records below the configured level are dropped."""
        stream = StringIO()
        setup_logging(level="warning", stream=stream)
        logger = get_logger("test_level")
        logger.info("hidden")
        logger.warning("shown")

        output = stream.getvalue()
        assert "hidden" not in output
        assert "shown" in output


class TestResolveLevel:
    """Tests for level resolution."""

    @pytest.mark.unit
    def test_names_are_case_insensitive(self) -> None:
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level("ERROR") == logging.ERROR

    @pytest.mark.unit
    def test_numeric_level_passthrough(self) -> None:
        assert resolve_level(logging.WARNING) == logging.WARNING

    @pytest.mark.unit
    def test_unknown_name_falls_back_to_info(self) -> None:
        assert resolve_level("chatty") == logging.INFO

    @pytest.mark.unit
    def test_reads_environment(self, monkeypatch) -> None:
        """EMBEDDY_LOG_LEVEL is used when no level is passed."""
        monkeypatch.setenv("EMBEDDY_LOG_LEVEL", "debug")
        assert resolve_level() == logging.DEBUG

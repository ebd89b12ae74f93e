"""Unit tests for the logging configuration module.

This test module validates the structured logging configuration
and the context binding helpers used by the CLI and the scheduler.
"""

import logging

import pytest
import structlog

from src.log_config import (
    bind_context,
    bind_correlation_id,
    bound_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
    unbind_correlation_id,
)


class TestLoggingConfiguration:
    """Test cases for logging configuration."""

    def test_configure_logging_info_level(self):
        """Test logging configuration with INFO level."""
        configure_logging(level="INFO", json_logs=True)

        assert logging.getLogger().level == logging.INFO

    def test_configure_logging_lowercase_level(self):
        """Test level names are case-insensitive."""
        configure_logging(level="debug", json_logs=True)

        assert logging.getLogger().level == logging.DEBUG

    def test_configure_logging_invalid_level(self):
        """Test logging configuration with invalid level."""
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="INVALID", json_logs=True)

    def test_configure_logging_console_renderer(self):
        """Test logging configuration with console renderer."""
        configure_logging(level="INFO", json_logs=False)

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_configure_logging_json_renderer(self):
        """Test logging configuration with JSON renderer."""
        configure_logging(level="INFO", json_logs=True)

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_get_logger(self):
        """Test getting loggers with and without a name."""
        configure_logging(level="INFO", json_logs=True)

        assert get_logger(__name__) is not None
        assert get_logger() is not None


class TestContextBinding:
    """Test cases for context binding functionality."""

    def setup_method(self):
        """Set up test environment before each test."""
        configure_logging(level="INFO", json_logs=True)
        clear_context()

    def teardown_method(self):
        """Clean up after each test."""
        clear_context()

    def test_bind_correlation_id(self):
        """Test binding a correlation ID to the logging context."""
        bind_correlation_id("session-42")

        assert structlog.contextvars.get_contextvars() == {"correlation_id": "session-42"}

    def test_unbind_correlation_id(self):
        """Test unbinding the correlation ID from the logging context."""
        bind_correlation_id("session-42")
        unbind_correlation_id()

        assert "correlation_id" not in structlog.contextvars.get_contextvars()

    def test_bind_and_unbind_context(self):
        """Test binding several variables and removing some of them."""
        bind_context(task_id="api", batch_index=1)
        unbind_context("batch_index")

        assert structlog.contextvars.get_contextvars() == {"task_id": "api"}

    def test_clear_context(self):
        """Test clearing all context variables."""
        bind_correlation_id("session-42")
        bind_context(task_id="api")

        clear_context()

        assert structlog.contextvars.get_contextvars() == {}

    def test_context_reaches_log_output(self, caplog):
        """Test bound context is rendered into emitted log lines."""
        caplog.set_level(logging.INFO)
        logger = get_logger("planner.test")

        bind_context(task_id="api")
        logger.info("task_started")

        messages = [record.getMessage() for record in caplog.records]
        assert any("task_started" in m and '"task_id": "api"' in m for m in messages)

    def test_bound_context_is_removed_after_block(self):
        """Test bound_context unbinds its keys even when the block raises."""
        bind_correlation_id("session-42")

        with pytest.raises(RuntimeError), bound_context(task_id="api", batch_index=0):
            assert structlog.contextvars.get_contextvars()["task_id"] == "api"
            raise RuntimeError

        assert structlog.contextvars.get_contextvars() == {"correlation_id": "session-42"}

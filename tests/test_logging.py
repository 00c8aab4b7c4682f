"""
Tests for logging setup and helpers.
"""

import logging
from unittest.mock import Mock

import pytest
import structlog

from fitflow.utils.logging import log_batch_progress, setup_logging


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestSetupLogging:

    @pytest.mark.parametrize("format_type", ["console", "json"])
    def test_single_timestamp_source(self, reset_structlog, format_type):
        setup_logging(level="INFO", format_type=format_type)

        processors = structlog.get_config()['processors']
        assert not any(isinstance(p, structlog.processors.TimeStamper) for p in processors)

    def test_console_formatter_carries_time(self, reset_structlog):
        setup_logging(level="DEBUG")

        handler = logging.getLogger("fitflow").handlers[0]
        assert "%(asctime)s" in handler.formatter._fmt
        assert logging.getLogger("fitflow").level == logging.DEBUG


class TestLogBatchProgress:

    def test_logs_given_percentage(self):
        logger = Mock()

        log_batch_progress(logger, batch=1, processed=500, total=1200, percentage=42)

        logger.info.assert_called_once_with(
            "Record batch stored", batch=1, processed=500, total=1200, percentage=42,
        )

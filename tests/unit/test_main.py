"""Tests for tldr_bot/main.py"""

import logging
import os
import pytest
from unittest.mock import patch

from tldr_bot.main import BotTokenFilter, NOISY_LOGGERS, setup_logging

TOKEN_URL = "HTTP Request: POST https://api.telegram.org/bot123456:AAH-secret_Token/getUpdates"


def _record(msg, args=None):
    return logging.LogRecord("httpx", logging.INFO, __file__, 1, msg, args, None)


class TestBotTokenFilter:
    """Tests for BotTokenFilter."""

    def test_redacts_token_in_message(self):
        record = _record(TOKEN_URL)

        assert BotTokenFilter().filter(record) is True
        assert record.getMessage() == (
            "HTTP Request: POST https://api.telegram.org/bot<redacted>/getUpdates"
        )

    def test_redacts_token_in_args(self):
        """httpx passes the URL as a %-format argument."""
        record = _record("HTTP Request: %s %s", ("POST", "https://api.telegram.org/bot42:abcDEF/sendMessage"))

        BotTokenFilter().filter(record)

        assert "abcDEF" not in record.getMessage()
        assert "bot<redacted>/sendMessage" in record.getMessage()

    def test_other_records_untouched(self):
        record = _record("Summarizing %d messages", (5,))

        BotTokenFilter().filter(record)

        assert record.args == (5,)
        assert record.getMessage() == "Summarizing 5 messages"


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        library_levels = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
        yield
        root.handlers = handlers
        root.setLevel(level)
        for name, value in library_levels.items():
            logging.getLogger(name).setLevel(value)

    def test_levels_from_env(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'debug', 'LIBRARY_LOG_LEVEL': 'ERROR'}):
            setup_logging()

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger('telegram').level == logging.ERROR
        assert logging.getLogger('httpx').level == logging.ERROR

    def test_handler_redacts_tokens(self):
        setup_logging()

        handler = logging.getLogger().handlers[-1]
        assert any(isinstance(f, BotTokenFilter) for f in handler.filters)

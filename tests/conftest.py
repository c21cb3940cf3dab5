"""Shared fixtures for TLDR Bot tests."""

import os
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from datetime import datetime, timedelta


# Set test environment variables before imports
os.environ.setdefault('ENCRYPTION_KEY', 'test_encryption_key_16chars')
os.environ.setdefault('TIMEZONE', 'UTC')

TEST_API_KEY = "AIzaSyTestKey_abcdefghijklmnop"


def make_message(
    message_id,
    content="hello",
    username="alice",
    display_name="Alice",
    user_id=1,
    chat_id=-100,
    timestamp=None
):
    """Lightweight stand-in for a cached Message row."""
    return SimpleNamespace(
        chat_id=chat_id,
        message_id=message_id,
        user_id=user_id,
        username=username,
        display_name=display_name,
        content=content,
        timestamp=timestamp or datetime(2024, 1, 1, 12, 0) + timedelta(seconds=message_id),
    )


@pytest.fixture
def message_factory():
    """The make_message helper, for tests that build their own message lists."""
    return make_message


@pytest.fixture
def repo(tmp_path):
    """A fresh file-backed repository per test."""
    from tldr_bot.database.repository import DatabaseRepository
    return DatabaseRepository(str(tmp_path / "tldr_test.db"), encryption_key="test_key_16_chars")


@pytest.fixture
def active_group(repo):
    """An enabled group that has completed setup."""
    repo.create_group_config(-100, setup_by_user_id=42)
    return repo.set_group_api_key(-100, TEST_API_KEY)


@pytest.fixture
def sample_messages():
    """Five ordinary chat messages."""
    return [
        make_message(1, "Hey everyone, let's discuss the project timeline."),
        make_message(2, "I think we need to prioritize the API changes.", username="bob", display_name="Bob", user_id=2),
        make_message(3, "Agreed. The database migration should come first."),
        make_message(4, "Can someone review my PR?", username="carol", display_name="Carol", user_id=3),
        make_message(5, "I'll take a look at it this afternoon.", username="bob", display_name="Bob", user_id=2),
    ]


@pytest.fixture
def mock_generator():
    """Generation client whose generate() returns a fixed summary."""
    generator = MagicMock()
    generator.generate = AsyncMock(return_value="This is a test summary of the conversation.")
    return generator


@pytest.fixture
def no_sleep():
    """Backoff sleep that records delays instead of waiting."""
    return AsyncMock()


@pytest.fixture
def long_text():
    """Generate text longer than Telegram's 4096 char limit."""
    base = "This is a test sentence that will be repeated. "
    return base * 100  # ~4700 chars


@pytest.fixture
def very_long_text():
    """Generate text requiring multiple splits."""
    base = "This is a longer test paragraph with some content. "
    return base * 250  # ~12700 chars

"""Tests for tldr_bot/utils/timezone.py"""

import os
from datetime import datetime
from unittest.mock import patch
import pytz

import tldr_bot.utils.timezone as tz_module


class TestGetConfiguredTimezone:
    """Tests for get_configured_timezone function."""

    def setup_method(self):
        """Reset the cached timezone before each test."""
        tz_module._configured_timezone = None

    def teardown_method(self):
        tz_module._configured_timezone = None

    def test_valid_timezone(self):
        """Parses valid IANA timezone string."""
        with patch.dict(os.environ, {'TIMEZONE': 'America/Chicago'}):
            result = tz_module.get_configured_timezone()
            assert result == pytz.timezone('America/Chicago')

    def test_invalid_timezone_fallback(self):
        """Invalid timezone string falls back to UTC."""
        with patch.dict(os.environ, {'TIMEZONE': 'Invalid/Timezone'}):
            result = tz_module.get_configured_timezone()
            assert result == pytz.UTC

    def test_missing_env_var(self):
        """Missing TIMEZONE env var defaults to UTC."""
        env = os.environ.copy()
        env.pop('TIMEZONE', None)
        with patch.dict(os.environ, env, clear=True):
            result = tz_module.get_configured_timezone()
            assert result == pytz.UTC

    def test_caching(self):
        """Second call returns cached value."""
        with patch.dict(os.environ, {'TIMEZONE': 'Europe/London'}):
            result1 = tz_module.get_configured_timezone()

            with patch.dict(os.environ, {'TIMEZONE': 'Asia/Tokyo'}):
                result2 = tz_module.get_configured_timezone()

            assert result1 == result2
            assert result2 == pytz.timezone('Europe/London')


class TestUtcnow:
    """Tests for utcnow function."""

    def test_returns_naive_datetime(self):
        """Returns naive datetime (no tzinfo)."""
        assert tz_module.utcnow().tzinfo is None

    def test_returns_current_time(self):
        """Returns approximately current time."""
        before = datetime.now(pytz.UTC).replace(tzinfo=None)
        result = tz_module.utcnow()
        after = datetime.now(pytz.UTC).replace(tzinfo=None)

        assert before <= result <= after


class TestToNaiveUtc:
    """Tests for to_naive_utc function."""

    def test_naive_unchanged(self):
        dt = datetime(2024, 6, 15, 12, 0)
        assert tz_module.to_naive_utc(dt) == dt

    def test_aware_converted(self):
        """Aware datetimes are shifted to UTC and made naive."""
        berlin = pytz.timezone('Europe/Berlin').localize(datetime(2024, 6, 15, 14, 0))

        result = tz_module.to_naive_utc(berlin)

        assert result == datetime(2024, 6, 15, 12, 0)
        assert result.tzinfo is None


class TestToConfiguredTimezone:
    """Tests for to_configured_timezone function."""

    def setup_method(self):
        """Reset the cached timezone before each test."""
        tz_module._configured_timezone = None

    def teardown_method(self):
        tz_module._configured_timezone = None

    def test_naive_datetime_assumed_utc(self):
        """Naive datetime is assumed to be UTC."""
        with patch.dict(os.environ, {'TIMEZONE': 'America/Chicago'}):
            result = tz_module.to_configured_timezone(datetime(2024, 6, 15, 12, 0, 0))

            # Chicago is UTC-5 in summer
            assert result.hour == 7
            assert result.tzinfo is not None

    def test_aware_datetime_converted(self):
        """Already-aware datetime is converted correctly."""
        with patch.dict(os.environ, {'TIMEZONE': 'America/Los_Angeles'}):
            utc_dt = pytz.UTC.localize(datetime(2024, 6, 15, 20, 0, 0))
            result = tz_module.to_configured_timezone(utc_dt)

            # LA is UTC-7 in summer
            assert result.hour == 13

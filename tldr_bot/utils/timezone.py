"""Timezone utilities for consistent date/time handling across the application.

All timestamps are stored as naive UTC datetimes. The configured timezone is
only used when rendering times back to users.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Optional

import pytz

logger = logging.getLogger(__name__)

# Cache the configured timezone to avoid repeated environment variable lookups
_configured_timezone: Optional[pytz.BaseTzInfo] = None


def get_configured_timezone() -> pytz.BaseTzInfo:
    """Get the configured display timezone from environment variable.

    Returns:
        pytz timezone object for the configured timezone.
        Defaults to UTC if TIMEZONE env var is not set or invalid.
    """
    global _configured_timezone

    if _configured_timezone is not None:
        return _configured_timezone

    timezone_str = os.getenv('TIMEZONE', 'UTC')

    try:
        _configured_timezone = pytz.timezone(timezone_str)
        logger.debug(f"Using configured timezone: {timezone_str}")
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(
            f"Invalid timezone '{timezone_str}' in TIMEZONE environment variable. "
            f"Falling back to UTC. Use IANA timezone strings (e.g., 'Europe/Berlin')."
        )
        _configured_timezone = pytz.UTC

    return _configured_timezone


def utcnow() -> datetime:
    """Get current datetime in UTC.

    Returns:
        Naive datetime object in UTC, matching what the database stores.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC.

    Naive input is assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def to_configured_timezone(dt: datetime) -> datetime:
    """Convert a datetime to the configured timezone.

    Args:
        dt: Datetime to convert (naive or aware)

    Returns:
        Timezone-aware datetime in the configured timezone.
        If input is naive, assumes it's UTC.
    """
    tz = get_configured_timezone()

    # If naive, assume UTC
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)

    return dt.astimezone(tz)

"""Utility modules for TLDR Bot."""

from .timezone import (
    get_configured_timezone,
    utcnow,
    to_naive_utc,
    to_configured_timezone,
)
from .timeframe import CountSelection, TimeSelection, parse_selection
from .message_filter import filter_messages

__all__ = [
    'get_configured_timezone',
    'utcnow',
    'to_naive_utc',
    'to_configured_timezone',
    'CountSelection',
    'TimeSelection',
    'parse_selection',
    'filter_messages',
]

"""Parse `/tldr` arguments into a message selection window.

The argument is free-form user text. A bare non-negative integer selects the
last N messages; anything else is read as a timeframe. Parsing never fails:
unrecognized input falls back to the last hour.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from .timezone import utcnow

DEFAULT_COUNT = 100
MIN_COUNT = 1
MAX_COUNT = 10000

DEFAULT_HOURS = 1
MAX_HOURS = 168
MAX_DAYS = 7
MAX_WEEKS = 1

_COUNT_RE = re.compile(r'^\d+$')
_HOURS_RE = re.compile(r'^(\d+)\s*(?:h|hours?)$')
_DAYS_RE = re.compile(r'^(\d+)\s*(?:d|days?)$')
_WEEKS_RE = re.compile(r'^(\d+)\s*weeks?$')


@dataclass(frozen=True)
class CountSelection:
    """Select the last `count` cached messages."""

    count: int

    @property
    def label(self) -> str:
        return f"last {self.count} messages"


@dataclass(frozen=True)
class TimeSelection:
    """Select messages newer than `since` (= now - hours)."""

    hours: int
    since: datetime
    defaulted: bool = False

    @property
    def label(self) -> str:
        if self.hours % 24 == 0:
            days = self.hours // 24
            return "1 week" if days == 7 else f"{days}d"
        return f"{self.hours}h"


Selection = Union[CountSelection, TimeSelection]


def clamp_count(value: int) -> int:
    """Clamp a requested message count into [MIN_COUNT, MAX_COUNT].

    Zero means "not specified" and maps to DEFAULT_COUNT.
    """
    if value <= 0:
        return DEFAULT_COUNT
    return max(MIN_COUNT, min(value, MAX_COUNT))


def parse_hours(text: str) -> Optional[int]:
    """Resolve a timeframe expression to a number of hours.

    Returns None when the text is outside the timeframe grammar.
    """
    text = text.strip().lower()

    if text == 'day':
        return 24
    if text == 'week':
        return MAX_HOURS

    match = _HOURS_RE.match(text)
    if match:
        hours = int(match.group(1)) or 1
        return min(hours, MAX_HOURS)

    match = _DAYS_RE.match(text)
    if match:
        days = int(match.group(1)) or 1
        return min(days, MAX_DAYS) * 24

    match = _WEEKS_RE.match(text)
    if match:
        weeks = int(match.group(1)) or 1
        return min(weeks, MAX_WEEKS) * MAX_HOURS

    return None


def parse_selection(text: Optional[str], now: Optional[datetime] = None) -> Selection:
    """Parse user input into a count or time selection.

    Args:
        text: Raw argument text (may be None or empty)
        now: Reference time (naive UTC); defaults to the current time

    Returns:
        CountSelection for bare integers, otherwise TimeSelection
    """
    text = (text or '').strip()
    now = now or utcnow()

    # "0" is a count request (falls back to the default count), not a timeframe
    if _COUNT_RE.match(text):
        return CountSelection(count=clamp_count(int(text)))

    hours = parse_hours(text)
    defaulted = hours is None
    if defaulted:
        hours = DEFAULT_HOURS

    return TimeSelection(hours=hours, since=now - timedelta(hours=hours), defaulted=defaulted)

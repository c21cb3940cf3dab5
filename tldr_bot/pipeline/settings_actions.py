"""Pure state transitions over a group's settings.

Every way of changing settings (CLI, API) goes through `apply_action`, which
validates the change and returns a new SettingsState. Persisting the result
is the caller's job (`DatabaseRepository.update_group_settings`).
"""

import re
from dataclasses import dataclass, replace, asdict
from typing import Any, Dict, FrozenSet, Optional, Union

from ..database.models import SCHEDULE_FREQUENCIES, SUMMARY_STYLES

_TIME_RE = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')

MAX_CUSTOM_PROMPT_LENGTH = 4000


@dataclass(frozen=True)
class SettingsState:
    """Immutable snapshot of a group's editable settings."""

    summary_style: str = 'default'
    custom_prompt: Optional[str] = None
    exclude_bot_messages: bool = True
    exclude_commands: bool = True
    excluded_user_ids: FrozenSet[int] = frozenset()
    schedule_enabled: bool = False
    schedule_frequency: str = 'daily'
    schedule_time: str = '09:00'

    @classmethod
    def from_model(cls, settings) -> "SettingsState":
        """Snapshot a GroupSettings row."""
        return cls(
            summary_style=settings.summary_style,
            custom_prompt=settings.custom_prompt,
            exclude_bot_messages=settings.exclude_bot_messages,
            exclude_commands=settings.exclude_commands,
            excluded_user_ids=frozenset(settings.excluded_user_ids or ()),
            schedule_enabled=settings.schedule_enabled,
            schedule_frequency=settings.schedule_frequency,
            schedule_time=settings.schedule_time,
        )

    def to_columns(self) -> Dict[str, Any]:
        """Column values for DatabaseRepository.update_group_settings."""
        columns = asdict(self)
        columns['excluded_user_ids'] = sorted(self.excluded_user_ids)
        return columns


@dataclass(frozen=True)
class SetStyle:
    style: str


@dataclass(frozen=True)
class SetCustomPrompt:
    prompt: Optional[str]


@dataclass(frozen=True)
class SetExcludeBots:
    enabled: bool


@dataclass(frozen=True)
class SetExcludeCommands:
    enabled: bool


@dataclass(frozen=True)
class ExcludeUser:
    user_id: int


@dataclass(frozen=True)
class IncludeUser:
    user_id: int


@dataclass(frozen=True)
class SetSchedule:
    enabled: bool
    frequency: Optional[str] = None
    time: Optional[str] = None


SettingsAction = Union[
    SetStyle, SetCustomPrompt, SetExcludeBots, SetExcludeCommands,
    ExcludeUser, IncludeUser, SetSchedule,
]


def parse_schedule_time(value: str) -> str:
    """Validate and normalize an "HH:MM" time string.

    Raises:
        ValueError: If the value is not a 24h time
    """
    value = (value or '').strip()
    if len(value) == 4 and value[1] == ':':
        value = '0' + value
    if not _TIME_RE.match(value):
        raise ValueError(f"Invalid time '{value}'. Use HH:MM (24h, UTC).")
    return value


def apply_action(state: SettingsState, action: SettingsAction) -> SettingsState:
    """Return the settings that result from applying `action` to `state`.

    Raises:
        ValueError: If the action carries an invalid value
    """
    if isinstance(action, SetStyle):
        if action.style not in SUMMARY_STYLES:
            raise ValueError(f"Unknown summary style '{action.style}'. Choose from: {', '.join(SUMMARY_STYLES)}")
        return replace(state, summary_style=action.style)

    if isinstance(action, SetCustomPrompt):
        prompt = (action.prompt or '').strip() or None
        if prompt and len(prompt) > MAX_CUSTOM_PROMPT_LENGTH:
            raise ValueError(f"Custom prompt is too long (max {MAX_CUSTOM_PROMPT_LENGTH} characters)")
        return replace(state, custom_prompt=prompt)

    if isinstance(action, SetExcludeBots):
        return replace(state, exclude_bot_messages=action.enabled)

    if isinstance(action, SetExcludeCommands):
        return replace(state, exclude_commands=action.enabled)

    if isinstance(action, ExcludeUser):
        return replace(state, excluded_user_ids=state.excluded_user_ids | {action.user_id})

    if isinstance(action, IncludeUser):
        return replace(state, excluded_user_ids=state.excluded_user_ids - {action.user_id})

    if isinstance(action, SetSchedule):
        frequency = action.frequency or state.schedule_frequency
        if frequency not in SCHEDULE_FREQUENCIES:
            raise ValueError(f"Unknown schedule frequency '{frequency}'. Choose daily or weekly.")
        time_str = parse_schedule_time(action.time) if action.time else state.schedule_time
        return replace(
            state,
            schedule_enabled=action.enabled,
            schedule_frequency=frequency,
            schedule_time=time_str,
        )

    raise TypeError(f"Unsupported settings action: {action!r}")

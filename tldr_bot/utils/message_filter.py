"""Settings-driven filtering of cached messages before summarization."""

from typing import Iterable, List, Optional

COMMAND_PREFIX = '/'

# Telegram requires every bot username to end in "bot"
BOT_USERNAME_SUFFIX = 'bot'


def is_bot_message(message) -> bool:
    """Return True if the sender's username marks it as a bot."""
    username = getattr(message, 'username', None)
    return bool(username) and username.lower().endswith(BOT_USERNAME_SUFFIX)


def is_command_message(message) -> bool:
    """Return True if the message content is a bot command."""
    content = getattr(message, 'content', None) or ''
    return content.lstrip().startswith(COMMAND_PREFIX)


def filter_messages(messages: Iterable, settings) -> List:
    """Drop messages excluded by the group's settings.

    Only removes messages; relative order is preserved and nothing is
    deduplicated, so filtering twice with the same settings is a no-op.

    Args:
        messages: Chronologically ordered messages
        settings: Object with exclude_bot_messages, exclude_commands and
            excluded_user_ids attributes (GroupSettings or SettingsState)

    Returns:
        The surviving messages, possibly empty
    """
    exclude_bots = bool(getattr(settings, 'exclude_bot_messages', False))
    exclude_commands = bool(getattr(settings, 'exclude_commands', False))
    excluded_users = set(getattr(settings, 'excluded_user_ids', None) or ())

    result = []
    for message in messages:
        if exclude_bots and is_bot_message(message):
            continue
        if exclude_commands and is_command_message(message):
            continue
        user_id: Optional[int] = getattr(message, 'user_id', None)
        if user_id is not None and user_id in excluded_users:
            continue
        result.append(message)

    return result

"""Message utilities for TLDR Bot.

Shared utilities for message handling across the application.
"""

from typing import List

# Telegram rejects messages longer than 4096 characters
TELEGRAM_MAX_MESSAGE_LENGTH = 4096

# Cached message content is truncated to this many characters
MAX_CACHED_CONTENT_LENGTH = 5000


def truncate_content(text: str, max_length: int = MAX_CACHED_CONTENT_LENGTH) -> str:
    """Truncate message content before it is cached."""
    return text[:max_length]


def sender_label(message) -> str:
    """Best display label for a message's sender."""
    return (
        getattr(message, 'username', None)
        or getattr(message, 'display_name', None)
        or 'Unknown'
    )


def split_long_message(text: str, max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> List[str]:
    """Split a long message into multiple parts that fit within Telegram's limit.

    Args:
        text: The message text to split
        max_length: Maximum length per message (default: 4096 for Telegram)

    Returns:
        List of message parts, each under max_length
    """
    if len(text) <= max_length:
        return [text]

    parts = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            parts.append(remaining)
            break

        # Reserve space for part indicator like " (1/3)"
        effective_max = max_length - 10

        # Try to split at paragraph boundary first
        chunk = remaining[:effective_max]
        split_pos = chunk.rfind('\n\n')

        # If no paragraph break, try single newline
        if split_pos == -1 or split_pos < effective_max // 2:
            split_pos = chunk.rfind('\n')

        # If no newline, try sentence boundary
        if split_pos == -1 or split_pos < effective_max // 2:
            for punct in ['. ', '! ', '? ']:
                pos = chunk.rfind(punct)
                if pos > effective_max // 2:
                    split_pos = pos + 1
                    break

        # If no good boundary, try space
        if split_pos == -1 or split_pos < effective_max // 2:
            split_pos = chunk.rfind(' ')

        # Last resort: hard cut
        if split_pos == -1 or split_pos < effective_max // 2:
            split_pos = effective_max

        parts.append(remaining[:split_pos].rstrip())
        remaining = remaining[split_pos:].lstrip()

    # Add part indicators if we have multiple parts
    if len(parts) > 1:
        total = len(parts)
        parts = [f"{part} ({i+1}/{total})" for i, part in enumerate(parts)]

    return parts

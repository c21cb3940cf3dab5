"""Request/result types for the summary pipeline."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ChatKind(Enum):
    """Kind of chat a request arrived from, resolved once at the transport boundary."""

    PRIVATE = "private"
    GROUP = "group"
    SUPERGROUP = "supergroup"
    CHANNEL = "channel"

    @classmethod
    def from_telegram(cls, chat_type: str) -> "ChatKind":
        """Map a Telegram chat type string onto a ChatKind."""
        try:
            return cls(chat_type)
        except ValueError:
            return cls.PRIVATE

    @property
    def is_group(self) -> bool:
        return self in (ChatKind.GROUP, ChatKind.SUPERGROUP)


@dataclass(frozen=True)
class SummaryRequest:
    """An interactive /tldr request."""

    chat_id: int
    user_id: int
    chat_kind: ChatKind
    argument: str = ""
    reply_to_message_id: Optional[int] = None


@dataclass(frozen=True)
class SummaryResult:
    """A generated (not persisted) summary."""

    text: str
    label: str
    message_count: int
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class SummaryRequestError(Exception):
    """A request that cannot be summarized, with a one-line reason for the user."""

    user_message = "Error generating summary. Please try again later."

    def __init__(self, message: str = None):
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class NotAGroupError(SummaryRequestError):
    user_message = "This command can only be used in a group."


class GroupNotConfiguredError(SummaryRequestError):
    user_message = (
        "This group is not configured yet. "
        "Ask an admin to finish setting it up with a Gemini API key."
    )


class GroupDisabledError(SummaryRequestError):
    user_message = "TLDR is currently disabled for this group."


class RateLimitedError(SummaryRequestError):
    """Raised when the same user asks again inside the rate-limit window."""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Please wait {retry_after} seconds before requesting another summary.")


class EmptySelectionError(SummaryRequestError):
    user_message = "No messages found in the specified time range."

"""Database models for TLDR Bot."""

from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Text,
    DateTime,
    Boolean,
    Index,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from ..utils.timezone import utcnow

Base = declarative_base()

SUMMARY_STYLES = ('default', 'detailed', 'brief', 'bullet', 'timeline')
SCHEDULE_FREQUENCIES = ('daily', 'weekly')


class GroupConfig(Base):
    """A Telegram group the bot has been set up for.

    A group is pending until an API key reference is stored. Pending or
    disabled groups are never summarized.
    """

    __tablename__ = "groups"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, unique=True, nullable=False, index=True)
    api_key_secret_ref = Column(Text, nullable=True)  # Resolved through a SecretCodec
    enabled = Column(Boolean, default=True, nullable=False)
    setup_by_user_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_pending(self) -> bool:
        return not self.api_key_secret_ref

    @property
    def is_active(self) -> bool:
        """True if the group may be summarized."""
        return bool(self.enabled) and not self.is_pending

    def __repr__(self):
        return f"<GroupConfig(chat_id={self.chat_id}, enabled={self.enabled}, pending={self.is_pending})>"


class Message(Base):
    """Temporarily cached group message.

    Identity is (chat_id, message_id). Edits update content and sender
    labels in place. Messages are evicted after the retention window,
    once folded into an archival Summary.
    """

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, nullable=False, index=True)
    message_id = Column(BigInteger, nullable=False)
    user_id = Column(BigInteger, nullable=True)
    username = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('chat_id', 'message_id', name='uq_message_identity'),
        Index('idx_message_chat_timestamp', 'chat_id', 'timestamp'),
        Index('idx_message_chat_message', 'chat_id', 'message_id'),
    )

    def __repr__(self):
        return f"<Message(chat={self.chat_id}, message_id={self.message_id}, timestamp={self.timestamp})>"


class Summary(Base):
    """Archived summary of a period of messages.

    At most one row per (chat_id, period_start, period_end); regenerating
    the same period is a no-op.
    """

    __tablename__ = "summaries"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, nullable=False, index=True)
    text = Column(Text, nullable=False)
    message_count = Column(Integer, default=0, nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('chat_id', 'period_start', 'period_end', name='uq_summary_period'),
        Index('idx_summary_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<Summary(chat={self.chat_id}, messages={self.message_count}, {self.period_start} - {self.period_end})>"


class GroupSettings(Base):
    """Per-group summarization preferences.

    Created lazily with defaults the first time a group's settings are read.

    summary_style values: default, detailed, brief, bullet, timeline
    schedule_frequency values: daily, weekly (weekly runs on Mondays)
    schedule_time: "HH:MM" in UTC
    """

    __tablename__ = "group_settings"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, nullable=False, unique=True, index=True)
    summary_style = Column(String(20), default="default", nullable=False)
    custom_prompt = Column(Text, nullable=True)
    exclude_bot_messages = Column(Boolean, default=True, nullable=False)
    exclude_commands = Column(Boolean, default=True, nullable=False)
    excluded_user_ids = Column(JSON, default=list, nullable=False)
    schedule_enabled = Column(Boolean, default=False, nullable=False)
    schedule_frequency = Column(String(20), default="daily", nullable=False)
    schedule_time = Column(String(5), default="09:00", nullable=False)
    last_scheduled_run = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_schedule_enabled", "schedule_enabled"),
    )

    def __repr__(self):
        return f"<GroupSettings(chat={self.chat_id}, style={self.summary_style}, schedule={self.schedule_enabled})>"

"""Database repository for CRUD operations - TLDR Bot."""

import logging
import os
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any, Iterable

from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from .models import Base, GroupConfig, Message, Summary, GroupSettings
from ..utils.timezone import utcnow

logger = logging.getLogger(__name__)

# Upper bound for range queries; matches the largest count a user can request
DEFAULT_QUERY_LIMIT = 10000


class DatabaseRepository:
    """Repository pattern for database operations with encryption."""

    def __init__(self, db_path: str, encryption_key: str = None):
        """Initialize the database connection with encryption.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests)
            encryption_key: Encryption key for database

        Raises:
            ValueError: If encryption_key is missing or too short
        """
        self.db_path = db_path

        if not encryption_key:
            encryption_key = os.getenv('ENCRYPTION_KEY')

        if not encryption_key:
            raise ValueError(
                "ENCRYPTION_KEY environment variable is required for TLDR Bot. "
                "Set it in your .env file or pass it directly."
            )

        # Validate encryption key strength (minimum 16 bytes / 128 bits)
        if len(encryption_key) < 16:
            raise ValueError(
                "ENCRYPTION_KEY must be at least 16 characters (128 bits) for secure encryption. "
                "Generate a strong key with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )

        self.encryption_key = encryption_key

        # Try to use SQLCipher for encryption if available
        try:
            import pysqlcipher3.dbapi2 as sqlcipher

            # pysqlcipher3 doesn't support the 'deterministic' kwarg that SQLAlchemy uses
            class ConnectionWrapper:
                """Wrapper around pysqlcipher3 connection to handle API differences."""

                def __init__(self, conn):
                    self._conn = conn

                def create_function(self, name, num_params, func, deterministic=False):
                    return self._conn.create_function(name, num_params, func)

                def __getattr__(self, name):
                    return getattr(self._conn, name)

            key = self.encryption_key

            def connection_creator():
                conn = sqlcipher.connect(db_path, check_same_thread=False)
                # SQLCipher PRAGMA key requires the key in quotes, so we escape any quotes in the key
                cursor = conn.cursor()
                escaped_key = key.replace("'", "''")
                cursor.execute(f"PRAGMA key = '{escaped_key}'")
                cursor.close()
                return ConnectionWrapper(conn)

            self.engine = create_engine(
                "sqlite://",  # URL is ignored when using creator
                creator=connection_creator,
                echo=False
            )

            self._use_sqlcipher = True
        except ImportError:
            # Fall back to regular SQLite (for development/testing)
            self.engine = create_engine(
                f"sqlite:///{db_path}",
                echo=False,
                connect_args={'check_same_thread': False}
            )
            self._use_sqlcipher = False
            logger.warning(
                "SQLCipher not available. Database is NOT encrypted! "
                "Install pysqlcipher3 for encryption: pip install pysqlcipher3"
            )

        self.Session = sessionmaker(bind=self.engine)
        self._create_tables()

    def _create_tables(self):
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.Session()

    # =========================================================================
    # Group configuration
    # =========================================================================

    def create_group_config(self, chat_id: int, setup_by_user_id: int = None) -> GroupConfig:
        """Create a pending group configuration, or return the existing one."""
        with self.get_session() as session:
            group = session.query(GroupConfig).filter_by(chat_id=chat_id).first()
            if group is None:
                group = GroupConfig(chat_id=chat_id, setup_by_user_id=setup_by_user_id)
                session.add(group)
                session.commit()
                session.refresh(group)
                logger.info(f"Created pending group config for chat {chat_id}")
            return group

    def get_group_config(self, chat_id: int) -> Optional[GroupConfig]:
        """Get a group configuration by Telegram chat ID."""
        with self.get_session() as session:
            return session.query(GroupConfig).filter_by(chat_id=chat_id).first()

    def get_all_group_configs(self) -> List[GroupConfig]:
        """Get all group configurations, pending ones included."""
        with self.get_session() as session:
            return session.query(GroupConfig).order_by(GroupConfig.created_at.asc()).all()

    def get_active_group_configs(self) -> List[GroupConfig]:
        """Get enabled groups that have completed setup."""
        with self.get_session() as session:
            return (
                session.query(GroupConfig)
                .filter(GroupConfig.enabled == True)  # noqa: E712
                .filter(GroupConfig.api_key_secret_ref.isnot(None))
                .all()
            )

    def list_groups_for_user(self, user_id: int) -> List[GroupConfig]:
        """Get groups set up by a given Telegram user, newest first."""
        with self.get_session() as session:
            return (
                session.query(GroupConfig)
                .filter_by(setup_by_user_id=user_id)
                .order_by(GroupConfig.created_at.desc())
                .all()
            )

    def set_group_api_key(self, chat_id: int, secret_ref: str) -> Optional[GroupConfig]:
        """Store the API key reference, completing setup for the group."""
        with self.get_session() as session:
            group = session.query(GroupConfig).filter_by(chat_id=chat_id).first()
            if not group:
                return None
            group.api_key_secret_ref = secret_ref
            group.updated_at = utcnow()
            session.commit()
            session.refresh(group)
            return group

    def set_group_enabled(self, chat_id: int, enabled: bool) -> Optional[GroupConfig]:
        """Enable or disable summarization for a group."""
        with self.get_session() as session:
            group = session.query(GroupConfig).filter_by(chat_id=chat_id).first()
            if not group:
                return None
            group.enabled = enabled
            group.updated_at = utcnow()
            session.commit()
            session.refresh(group)
            return group

    def delete_group_config(self, chat_id: int) -> bool:
        """Delete a group configuration along with its messages, settings and summaries.

        Returns:
            True if a configuration was deleted
        """
        with self.get_session() as session:
            session.query(Message).filter(Message.chat_id == chat_id).delete(synchronize_session=False)
            session.query(Summary).filter(Summary.chat_id == chat_id).delete(synchronize_session=False)
            session.query(GroupSettings).filter(GroupSettings.chat_id == chat_id).delete(synchronize_session=False)
            count = session.query(GroupConfig).filter(GroupConfig.chat_id == chat_id).delete(synchronize_session=False)
            session.commit()
            return count > 0

    # =========================================================================
    # Group settings
    # =========================================================================

    def get_group_settings(self, chat_id: int) -> GroupSettings:
        """Get a group's settings, creating them with defaults if missing."""
        with self.get_session() as session:
            settings = session.query(GroupSettings).filter_by(chat_id=chat_id).first()
            if settings is None:
                settings = GroupSettings(chat_id=chat_id, excluded_user_ids=[])
                session.add(settings)
                session.commit()
                session.refresh(settings)
            return settings

    def update_group_settings(self, chat_id: int, **changes) -> GroupSettings:
        """Update settings columns for a group.

        Args:
            chat_id: Telegram chat ID
            **changes: Column names and new values

        Raises:
            AttributeError: If a change names an unknown column
        """
        self.get_group_settings(chat_id)
        with self.get_session() as session:
            settings = session.query(GroupSettings).filter_by(chat_id=chat_id).first()
            for name, value in changes.items():
                if not hasattr(GroupSettings, name):
                    raise AttributeError(f"Unknown group setting: {name}")
                if name == 'excluded_user_ids':
                    value = sorted(set(value))
                setattr(settings, name, value)
            settings.updated_at = utcnow()
            session.commit()
            session.refresh(settings)
            return settings

    def get_scheduled_group_settings(self) -> List[GroupSettings]:
        """Get settings of every group with a scheduled summary enabled."""
        with self.get_session() as session:
            return (
                session.query(GroupSettings)
                .filter(GroupSettings.schedule_enabled == True)  # noqa: E712
                .all()
            )

    def set_last_scheduled_run(self, chat_id: int, when: datetime) -> None:
        """Record when a scheduled summary last ran for a group."""
        self.update_group_settings(chat_id, last_scheduled_run=when)

    # =========================================================================
    # Message operations
    # =========================================================================

    def upsert_message(
        self,
        chat_id: int,
        message_id: int,
        content: str,
        user_id: int = None,
        username: str = None,
        display_name: str = None,
        timestamp: datetime = None
    ) -> None:
        """Cache a message, or update content and sender labels if already cached.

        The original timestamp is kept on update so edits don't move messages
        around in the timeline.
        """
        values = {
            'chat_id': chat_id,
            'message_id': message_id,
            'user_id': user_id,
            'username': username,
            'display_name': display_name,
            'content': content,
            'timestamp': timestamp or utcnow(),
        }
        stmt = sqlite_insert(Message).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=['chat_id', 'message_id'],
            set_={
                'content': stmt.excluded.content,
                'username': stmt.excluded.username,
                'display_name': stmt.excluded.display_name,
            }
        )
        with self.get_session() as session:
            session.execute(stmt)
            session.commit()

    def get_messages_in_range(
        self,
        chat_id: int,
        since: datetime,
        limit: int = DEFAULT_QUERY_LIMIT
    ) -> List[Message]:
        """Get messages with timestamp >= since, oldest first."""
        with self.get_session() as session:
            return (
                session.query(Message)
                .filter(Message.chat_id == chat_id, Message.timestamp >= since)
                .order_by(Message.timestamp.asc(), Message.message_id.asc())
                .limit(limit)
                .all()
            )

    def get_messages_from_id(
        self,
        chat_id: int,
        since_message_id: int,
        limit: int = DEFAULT_QUERY_LIMIT
    ) -> List[Message]:
        """Get messages with message_id >= since_message_id, in message order."""
        with self.get_session() as session:
            return (
                session.query(Message)
                .filter(Message.chat_id == chat_id, Message.message_id >= since_message_id)
                .order_by(Message.message_id.asc())
                .limit(limit)
                .all()
            )

    def get_last_n(self, chat_id: int, n: int) -> List[Message]:
        """Get the newest n messages, returned oldest first."""
        with self.get_session() as session:
            newest = (
                session.query(Message)
                .filter(Message.chat_id == chat_id)
                .order_by(Message.timestamp.desc(), Message.message_id.desc())
                .limit(n)
                .all()
            )
            return list(reversed(newest))

    def get_stale_messages(self, max_age_hours: int, now: Optional[datetime] = None) -> List[Message]:
        """Get every message older than max_age_hours, ordered by chat then time.

        Args:
            max_age_hours: Age threshold in hours
            now: Reference time (naive UTC); pass the same value to
                delete_messages_older_than so both use one cutoff
        """
        cutoff = (now or utcnow()) - timedelta(hours=max_age_hours)
        with self.get_session() as session:
            return (
                session.query(Message)
                .filter(Message.timestamp < cutoff)
                .order_by(Message.chat_id.asc(), Message.timestamp.asc(), Message.message_id.asc())
                .all()
            )

    def delete_messages_older_than(self, max_age_hours: int, now: Optional[datetime] = None) -> int:
        """Delete all messages older than max_age_hours.

        Returns:
            Number of messages deleted
        """
        cutoff = (now or utcnow()) - timedelta(hours=max_age_hours)
        with self.get_session() as session:
            count = session.query(Message).filter(
                Message.timestamp < cutoff
            ).delete(synchronize_session=False)
            session.commit()
            return count

    def get_message_count_by_chat(self) -> Dict[int, int]:
        """Get cached message counts per chat."""
        with self.get_session() as session:
            results = session.query(
                Message.chat_id,
                func.count(Message.id).label('count')
            ).group_by(Message.chat_id).all()

            return {row.chat_id: row.count for row in results}

    # =========================================================================
    # Summary operations
    # =========================================================================

    def upsert_summary(
        self,
        chat_id: int,
        text: str,
        message_count: int,
        period_start: datetime,
        period_end: datetime
    ) -> bool:
        """Persist an archival summary unless one exists for the same period.

        Returns:
            True if a new row was inserted, False if the period was already archived
        """
        stmt = sqlite_insert(Summary).values(
            chat_id=chat_id,
            text=text,
            message_count=message_count,
            period_start=period_start,
            period_end=period_end,
            created_at=utcnow(),
        ).on_conflict_do_nothing(index_elements=['chat_id', 'period_start', 'period_end'])

        with self.get_session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount > 0

    def get_summaries(self, chat_id: int, limit: int = 20) -> List[Summary]:
        """Get archived summaries for a chat, newest first."""
        with self.get_session() as session:
            return (
                session.query(Summary)
                .filter(Summary.chat_id == chat_id)
                .order_by(Summary.period_end.desc())
                .limit(limit)
                .all()
            )

    def delete_summaries_older_than(self, days: int) -> int:
        """Delete archived summaries created more than `days` ago.

        Returns:
            Number of summaries deleted
        """
        cutoff = utcnow() - timedelta(days=days)
        with self.get_session() as session:
            count = session.query(Summary).filter(
                Summary.created_at < cutoff
            ).delete(synchronize_session=False)
            session.commit()
            return count

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Get cache and archive statistics (for CLI and API).

        Returns:
            Dict with message/summary/group totals and cache age bounds
        """
        with self.get_session() as session:
            total_messages = session.query(func.count(Message.id)).scalar() or 0
            total_summaries = session.query(func.count(Summary.id)).scalar() or 0
            total_groups = session.query(func.count(GroupConfig.id)).scalar() or 0
            active_groups = session.query(func.count(GroupConfig.id)).filter(
                GroupConfig.enabled == True,  # noqa: E712
                GroupConfig.api_key_secret_ref.isnot(None)
            ).scalar() or 0

            oldest = session.query(func.min(Message.timestamp)).scalar()
            newest = session.query(func.max(Message.timestamp)).scalar()

        return {
            'total_messages': total_messages,
            'total_summaries': total_summaries,
            'total_groups': total_groups,
            'active_groups': active_groups,
            'messages_by_chat': self.get_message_count_by_chat(),
            'oldest_message': oldest,
            'newest_message': newest,
        }


def group_by_chat(messages: Iterable[Message]) -> Dict[int, List[Message]]:
    """Group messages by chat_id, preserving their order within each chat."""
    grouped: Dict[int, List[Message]] = {}
    for message in messages:
        grouped.setdefault(message.chat_id, []).append(message)
    return grouped

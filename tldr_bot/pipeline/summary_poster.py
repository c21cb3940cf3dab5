"""Generate and post scheduled summaries to Telegram groups - TLDR Bot."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..database.repository import DatabaseRepository, DEFAULT_QUERY_LIMIT
from ..utils.formatter import format_summary_message
from ..utils.message_filter import filter_messages
from ..utils.message_utils import split_long_message
from ..utils.timezone import utcnow
from .summarizer_factory import SummarizerFactory

logger = logging.getLogger(__name__)

# Look-back window per schedule frequency
SCHEDULE_WINDOW_HOURS = {
    'daily': 24,
    'weekly': 168,
}


class SummaryPoster:
    """Generate scheduled summaries and post them to their group."""

    def __init__(
        self,
        transport,
        summarizer_factory: SummarizerFactory,
        db_repo: DatabaseRepository
    ):
        """Initialize the summary poster.

        Args:
            transport: Object with `async send_message(chat_id, html_text)`
            summarizer_factory: Creates per-group summarizers
            db_repo: DatabaseRepository for messages and settings
        """
        self.transport = transport
        self.summarizer_factory = summarizer_factory
        self.db_repo = db_repo

    async def generate_and_post_summary(
        self,
        group,
        settings,
        now: Optional[datetime] = None,
        dry_run: bool = False
    ) -> bool:
        """Summarize a group's scheduled window and post it to the group.

        Args:
            group: Active GroupConfig
            settings: The group's GroupSettings
            now: Reference time (naive UTC)
            dry_run: If True, log the summary instead of posting it

        Returns:
            True if the run completed (including "nothing to post"), False on failure
        """
        now = now or utcnow()
        hours = SCHEDULE_WINDOW_HOURS.get(settings.schedule_frequency, 24)
        since = now - timedelta(hours=hours)

        try:
            messages = self.db_repo.get_messages_in_range(group.chat_id, since, limit=DEFAULT_QUERY_LIMIT)
            messages = filter_messages(messages, settings)

            if not messages:
                logger.info(f"No messages for scheduled summary in chat {group.chat_id} (last {hours}h)")
                return True

            logger.info(
                f"Generating {settings.schedule_frequency} summary for chat {group.chat_id} "
                f"({len(messages)} messages, style={settings.summary_style})"
            )

            summarizer = self.summarizer_factory.for_group(group)
            summary_text = await summarizer.summarize_messages(
                messages,
                summary_style=settings.summary_style,
                custom_prompt=settings.custom_prompt,
            )

            label = "daily digest" if settings.schedule_frequency == 'daily' else "weekly digest"
            message_text = format_summary_message(summary_text, label, len(messages))
            message_parts = split_long_message(message_text)

            if dry_run:
                logger.info(f"DRY RUN: Would post summary to chat {group.chat_id} ({len(message_parts)} part(s))")
                for part in message_parts:
                    logger.info(part)
                return True

            for part in message_parts:
                await self.transport.send_message(group.chat_id, part)

            logger.info(f"Posted scheduled summary to chat {group.chat_id} ({len(message_parts)} part(s))")
            return True

        except Exception as e:
            logger.error(f"Scheduled summary failed for chat {group.chat_id}: {e}", exc_info=True)
            return False

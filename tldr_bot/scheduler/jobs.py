"""Scheduled jobs for TLDR Bot.

Jobs, each on its own trigger and each isolated from the others' failures:
- Eviction: summarizes messages past retention into archival summaries, then deletes them
- Summary retention: prunes old archival summaries
- Scheduled summaries: posts daily/weekly digests to groups that asked for them
- Orphan cleanup: removes configuration for groups the bot has left
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..database.repository import group_by_chat
from ..messaging.membership import MembershipCheckError
from ..utils.timezone import utcnow

logger = logging.getLogger(__name__)

# A scheduled time matches ticks within [-tolerance, +tolerance) minutes of it.
# With hourly ticks exactly one tick falls inside that window.
SCHEDULE_TOLERANCE_MINUTES = 30

# "Once per day" guard; shorter than 24h so tick drift can't skip a day
MIN_HOURS_BETWEEN_RUNS = 23

# Weekly digests run on Mondays (datetime.weekday() == 0)
WEEKLY_RUN_WEEKDAY = 0


def is_schedule_due(settings, now: datetime) -> bool:
    """Decide whether a group's scheduled summary should run at `now`.

    Args:
        settings: GroupSettings (or SettingsState plus last_scheduled_run)
        now: Current naive UTC time

    Returns:
        True if the configured time-of-day is within tolerance, the weekday
        fits the frequency, and no run happened in the last 23 hours
    """
    if not settings.schedule_enabled:
        return False

    try:
        hour, minute = map(int, settings.schedule_time.split(":"))
    except (AttributeError, ValueError):
        logger.warning(f"Invalid schedule time '{settings.schedule_time}' for chat {settings.chat_id}")
        return False

    # Signed distance from the scheduled time-of-day, wrapped into [-12h, 12h)
    now_minutes = now.hour * 60 + now.minute
    diff = (now_minutes - (hour * 60 + minute) + 720) % 1440 - 720
    if not -SCHEDULE_TOLERANCE_MINUTES <= diff < SCHEDULE_TOLERANCE_MINUTES:
        return False

    if settings.schedule_frequency == 'weekly':
        scheduled_instant = now - timedelta(minutes=diff)
        if scheduled_instant.weekday() != WEEKLY_RUN_WEEKDAY:
            return False

    last_run = getattr(settings, 'last_scheduled_run', None)
    if last_run and now - last_run < timedelta(hours=MIN_HOURS_BETWEEN_RUNS):
        return False

    return True


class LifecycleScheduler:
    """Scheduler for TLDR Bot background jobs.

    Manages:
    - Eviction with pre-deletion summarization
    - Archival summary retention
    - Scheduled per-group summaries
    - Orphaned configuration cleanup
    """

    def __init__(
        self,
        db_repo,
        summarizer_factory,
        summary_poster,
        membership
    ):
        """Initialize scheduler with components.

        Args:
            db_repo: DatabaseRepository instance for data operations
            summarizer_factory: SummarizerFactory for archival summaries
            summary_poster: SummaryPoster for scheduled summaries
            membership: Object with `async is_still_member(chat_id) -> bool`
        """
        self.db_repo = db_repo
        self.summarizer_factory = summarizer_factory
        self.summary_poster = summary_poster
        self.membership = membership

        self.scheduler = AsyncIOScheduler(timezone=pytz.UTC)

        # Get configuration from environment
        self.eviction_interval_hours = int(os.getenv('EVICTION_INTERVAL_HOURS', '12'))
        self.message_retention_hours = int(os.getenv('MESSAGE_RETENTION_HOURS', '48'))
        self.summary_retention_days = int(os.getenv('SUMMARY_RETENTION_DAYS', '14'))
        self.schedule_check_interval_hours = int(os.getenv('SCHEDULE_CHECK_INTERVAL_HOURS', '1'))
        self.orphan_check_interval_hours = int(os.getenv('ORPHAN_CHECK_INTERVAL_HOURS', '24'))
        self.startup_check_delay_seconds = int(os.getenv('STARTUP_CHECK_DELAY_SECONDS', '60'))

    def start(self):
        """Register all jobs and start the scheduler (requires a running event loop)."""
        logger.info("Starting TLDR Bot scheduler...")

        self.scheduler.add_job(
            self.eviction_job,
            trigger=IntervalTrigger(hours=self.eviction_interval_hours),
            id="eviction",
            name="Message Eviction",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.summary_retention_job,
            trigger=IntervalTrigger(hours=24),
            id="summary_retention",
            name="Summary Retention",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.scheduled_summaries_job,
            trigger=IntervalTrigger(hours=self.schedule_check_interval_hours),
            id="scheduled_summaries",
            name="Scheduled Summaries",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.orphan_cleanup_job,
            trigger=IntervalTrigger(hours=self.orphan_check_interval_hours),
            id="orphan_cleanup",
            name="Orphaned Group Cleanup",
            replace_existing=True
        )

        # Deferred initial checks so startup isn't blocked on Telegram/Gemini
        run_date = datetime.now(pytz.UTC) + timedelta(seconds=self.startup_check_delay_seconds)
        self.scheduler.add_job(
            self.scheduled_summaries_job,
            trigger=DateTrigger(run_date=run_date),
            id="scheduled_summaries_initial",
            name="Initial Scheduled Summary Check",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.orphan_cleanup_job,
            trigger=DateTrigger(run_date=run_date),
            id="orphan_cleanup_initial",
            name="Initial Orphaned Group Check",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started (eviction every {self.eviction_interval_hours}h, "
            f"retention {self.message_retention_hours}h messages / {self.summary_retention_days}d summaries)"
        )

    def stop(self):
        """Stop the scheduler."""
        logger.info("Stopping scheduler...")
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    # =========================================================================
    # Eviction and retention
    # =========================================================================

    async def eviction_job(self) -> dict:
        """Archive-summarize stale messages per chat, then delete all stale messages.

        The retention cutoff is fixed once when the job starts, so messages
        that age past it while summaries are generated stay cached for the
        next run. Deletion happens even if some or all summaries failed.

        Returns:
            Dict with summaries_created, chats_failed and messages_deleted
        """
        results = {'summaries_created': 0, 'chats_failed': 0, 'messages_deleted': 0}
        now = utcnow()

        try:
            logger.info("Starting message eviction...")
            await self._archive_stale_messages(results, now)
        except Exception as e:
            logger.error(f"Error archiving stale messages: {e}", exc_info=True)
        finally:
            try:
                results['messages_deleted'] = self.db_repo.delete_messages_older_than(
                    self.message_retention_hours, now=now
                )
                logger.info(f"Evicted {results['messages_deleted']} messages older than {self.message_retention_hours}h")
            except Exception as e:
                logger.error(f"Error deleting stale messages: {e}", exc_info=True)

        return results

    async def _archive_stale_messages(self, results: dict, now: datetime):
        """Summarize each chat's stale messages into a persisted Summary."""
        stale = self.db_repo.get_stale_messages(self.message_retention_hours, now=now)
        if not stale:
            logger.info("No stale messages to archive")
            return

        for chat_id, messages in group_by_chat(stale).items():
            try:
                group = self.db_repo.get_group_config(chat_id)
                if group is None or not group.is_active:
                    logger.debug(f"Skipping archival for inactive chat {chat_id}")
                    continue

                # Archival summaries cover everything; filters are not applied
                settings = self.db_repo.get_group_settings(chat_id)
                summarizer = self.summarizer_factory.for_group(group)
                text = await summarizer.summarize_messages(
                    messages,
                    summary_style=settings.summary_style,
                    custom_prompt=settings.custom_prompt,
                )

                inserted = self.db_repo.upsert_summary(
                    chat_id=chat_id,
                    text=text,
                    message_count=len(messages),
                    period_start=messages[0].timestamp,
                    period_end=messages[-1].timestamp,
                )
                if inserted:
                    results['summaries_created'] += 1
                    logger.info(f"Archived {len(messages)} messages for chat {chat_id}")
                else:
                    logger.info(f"Summary for chat {chat_id} already archived for this period")

            except Exception as e:
                results['chats_failed'] += 1
                logger.error(f"Archival summary failed for chat {chat_id}: {e}", exc_info=True)

    async def summary_retention_job(self) -> int:
        """Delete archival summaries past their retention window."""
        try:
            deleted = self.db_repo.delete_summaries_older_than(self.summary_retention_days)
            logger.info(f"Purged {deleted} summaries older than {self.summary_retention_days} days")
            return deleted
        except Exception as e:
            logger.error(f"Error in summary retention job: {e}", exc_info=True)
            return 0

    # =========================================================================
    # Scheduled summaries
    # =========================================================================

    async def scheduled_summaries_job(self, now: Optional[datetime] = None) -> int:
        """Post summaries for every group whose schedule is due.

        Returns:
            Number of groups whose scheduled run completed
        """
        now = now or utcnow()
        completed = 0

        try:
            schedules = self.db_repo.get_scheduled_group_settings()
        except Exception as e:
            logger.error(f"Error loading scheduled summaries: {e}", exc_info=True)
            return 0

        for settings in schedules:
            try:
                if not is_schedule_due(settings, now):
                    continue

                group = self.db_repo.get_group_config(settings.chat_id)
                if group is None or not group.is_active:
                    logger.debug(f"Skipping schedule for inactive chat {settings.chat_id}")
                    continue

                logger.info(f"Executing {settings.schedule_frequency} summary for chat {settings.chat_id}")
                success = await self.summary_poster.generate_and_post_summary(group, settings, now=now)

                if success:
                    self.db_repo.set_last_scheduled_run(settings.chat_id, now)
                    completed += 1
                else:
                    logger.error(f"Failed to complete scheduled summary for chat {settings.chat_id}")

            except Exception as e:
                logger.error(f"Error in scheduled summary for chat {settings.chat_id}: {e}", exc_info=True)

        return completed

    # =========================================================================
    # Orphan cleanup
    # =========================================================================

    async def orphan_cleanup_job(self) -> int:
        """Delete configuration for groups the bot is no longer a member of.

        Indeterminate membership checks keep the group.

        Returns:
            Number of group configurations removed
        """
        removed = 0

        try:
            groups = self.db_repo.get_all_group_configs()
        except Exception as e:
            logger.error(f"Error loading groups for orphan cleanup: {e}", exc_info=True)
            return 0

        for group in groups:
            try:
                if await self.membership.is_still_member(group.chat_id):
                    continue
            except MembershipCheckError as e:
                logger.warning(f"Could not verify membership for chat {group.chat_id}, keeping it: {e}")
                continue
            except Exception as e:
                logger.error(f"Membership check failed for chat {group.chat_id}: {e}", exc_info=True)
                continue

            try:
                if self.db_repo.delete_group_config(group.chat_id):
                    removed += 1
                    logger.info(f"Removed configuration for chat {group.chat_id} (bot no longer a member)")
            except Exception as e:
                logger.error(f"Error removing orphaned chat {group.chat_id}: {e}", exc_info=True)

        return removed

    # =========================================================================
    # Manual Operations
    # =========================================================================

    async def run_eviction_now(self) -> dict:
        """Manually trigger eviction.

        Returns:
            Dict with eviction results
        """
        logger.info("Manual eviction triggered")
        return await self.eviction_job()

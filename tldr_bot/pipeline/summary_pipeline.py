"""Interactive /tldr pipeline - TLDR Bot.

Request → rate limit → group config → selection window → repository →
filter → chunked summarizer. Rendering and delivery are left to the caller.
"""

import logging
from typing import Optional

from ..ai.errors import SummarizationError, UnknownGenerationError
from ..database.repository import DatabaseRepository, DEFAULT_QUERY_LIMIT
from ..utils.message_filter import filter_messages
from ..utils.rate_limiter import RateLimiter
from ..utils.timeframe import CountSelection, parse_selection
from .models import (
    EmptySelectionError,
    GroupDisabledError,
    GroupNotConfiguredError,
    NotAGroupError,
    RateLimitedError,
    SummaryRequest,
    SummaryResult,
)
from .summarizer_factory import SummarizerFactory

logger = logging.getLogger(__name__)


class SummaryPipeline:
    """Turns an interactive summary request into summary text."""

    def __init__(
        self,
        db_repo: DatabaseRepository,
        summarizer_factory: SummarizerFactory,
        rate_limiter: Optional[RateLimiter] = None
    ):
        """Initialize the pipeline.

        Args:
            db_repo: Message repository and group configuration store
            summarizer_factory: Creates per-group summarizers
            rate_limiter: Per (chat, user) limiter (default: 30 seconds)
        """
        self.db_repo = db_repo
        self.summarizer_factory = summarizer_factory
        self.rate_limiter = rate_limiter or RateLimiter()

    async def handle_request(self, request: SummaryRequest) -> SummaryResult:
        """Produce a summary for an interactive request.

        Raises:
            SummaryRequestError: The request cannot be served (not a group,
                rate limited, not configured, disabled, nothing to summarize)
            SummarizationError: Generation failed; user_message says why
        """
        if not request.chat_kind.is_group:
            raise NotAGroupError()

        retry_after = self.rate_limiter.check((request.chat_id, request.user_id))
        if retry_after:
            logger.info(f"Rate limited summary request in chat {request.chat_id} ({retry_after}s left)")
            raise RateLimitedError(retry_after)

        group = self.db_repo.get_group_config(request.chat_id)
        if group is None or group.is_pending:
            raise GroupNotConfiguredError()
        if not group.enabled:
            raise GroupDisabledError()

        settings = self.db_repo.get_group_settings(request.chat_id)

        if request.reply_to_message_id is not None:
            label = "from message"
            messages = self.db_repo.get_messages_from_id(
                request.chat_id, request.reply_to_message_id, limit=DEFAULT_QUERY_LIMIT
            )
        else:
            selection = parse_selection(request.argument)
            label = selection.label
            if isinstance(selection, CountSelection):
                messages = self.db_repo.get_last_n(request.chat_id, selection.count)
            else:
                messages = self.db_repo.get_messages_in_range(
                    request.chat_id, selection.since, limit=DEFAULT_QUERY_LIMIT
                )

        messages = filter_messages(messages, settings)
        if not messages:
            raise EmptySelectionError()

        logger.info(f"Summarizing {len(messages)} messages for chat {request.chat_id} ({label})")

        summarizer = self.summarizer_factory.for_group(group)
        try:
            text = await summarizer.summarize_messages(
                messages,
                summary_style=settings.summary_style,
                custom_prompt=settings.custom_prompt,
            )
        except SummarizationError:
            raise
        except Exception as e:
            logger.error(f"Unexpected summarization failure for chat {request.chat_id}: {e}", exc_info=True)
            raise UnknownGenerationError(cause=e) from e

        return SummaryResult(
            text=text,
            label=label,
            message_count=len(messages),
            period_start=messages[0].timestamp,
            period_end=messages[-1].timestamp,
        )

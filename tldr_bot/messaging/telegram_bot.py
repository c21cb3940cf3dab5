"""Telegram bot handlers for TLDR Bot.

Caches group messages and serves /tldr, /tldr_info, /start, /list_groups and
/remove_group. All summary logic lives in SummaryPipeline; this module only
translates Telegram updates into requests and results into replies.
"""

import logging
from typing import Optional

from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..ai.errors import SummarizationError
from ..database.repository import DatabaseRepository
from ..pipeline.models import ChatKind, SummaryRequest, SummaryRequestError, SummaryResult
from ..pipeline.summary_pipeline import SummaryPipeline
from ..utils.formatter import format_summary_message
from ..utils.message_utils import split_long_message, truncate_content
from ..utils.timezone import to_naive_utc
from .membership import TelegramMembership

logger = logging.getLogger(__name__)

GENERIC_ERROR_TEXT = "❌ Error generating summary. Please try again later."

# Caching sits in its own handler group so commands are cached as well;
# exclude_commands drops them at summary time.
CACHE_HANDLER_GROUP = 1

START_TEXT = (
    "👋 <b>Welcome to TLDR Bot!</b>\n\n"
    "This bot summarizes Telegram group chats using Google's Gemini AI.\n\n"
    "<b>Group commands:</b>\n"
    "• /tldr 1h - Summary of the last hour\n"
    "• /tldr 6h - Summary of the last 6 hours\n"
    "• /tldr day - Summary of the last day\n"
    "• /tldr 200 - Summary of the last 200 messages\n"
    "• Reply to a message with /tldr - Everything from that message on\n"
    "• /tldr_info - Group configuration\n\n"
    "<b>Private commands:</b>\n"
    "• /list_groups - Groups you set up\n"
    "• /remove_group &lt;chat id&gt; - Remove a group you set up or administer\n\n"
    "<i>Each group needs its own Gemini API key, configured by an operator.</i>"
)


class TldrTelegramBot:
    """Telegram front end: message caching and summary commands."""

    def __init__(
        self,
        application: Application,
        db_repo: DatabaseRepository,
        pipeline: SummaryPipeline,
        membership: Optional[TelegramMembership] = None
    ):
        """Initialize the bot and register its handlers.

        Args:
            application: python-telegram-bot Application
            db_repo: Database repository for caching and group lookups
            pipeline: Summary pipeline serving /tldr
            membership: Admin checks for /remove_group; without it only the
                user who set a group up may remove it
        """
        self.application = application
        self.db_repo = db_repo
        self.pipeline = pipeline
        self.membership = membership
        self._register_handlers()

    def _register_handlers(self):
        app = self.application
        app.add_handler(CommandHandler("start", self.handle_start, filters=filters.ChatType.PRIVATE))
        app.add_handler(CommandHandler("list_groups", self.handle_list_groups, filters=filters.ChatType.PRIVATE))
        app.add_handler(CommandHandler("remove_group", self.handle_remove_group))
        app.add_handler(CommandHandler("tldr", self.handle_tldr))
        app.add_handler(CommandHandler("tldr_info", self.handle_tldr_info))
        app.add_handler(
            MessageHandler(
                filters.ChatType.GROUPS
                & (filters.UpdateType.MESSAGE | filters.UpdateType.EDITED_MESSAGE)
                & (filters.TEXT | filters.CAPTION),
                self.handle_group_message
            ),
            group=CACHE_HANDLER_GROUP
        )

    # =========================================================================
    # Message caching
    # =========================================================================

    async def handle_group_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Cache a new or edited group message for an active group."""
        chat = update.effective_chat
        message = update.effective_message
        if not chat or not message:
            return

        content = message.text or message.caption or ''
        if not content:
            return

        group = self.db_repo.get_group_config(chat.id)
        if group is None or not group.is_active:
            return

        sender = message.from_user
        try:
            self.db_repo.upsert_message(
                chat_id=chat.id,
                message_id=message.message_id,
                content=truncate_content(content),
                user_id=sender.id if sender else None,
                username=sender.username if sender else None,
                display_name=sender.full_name if sender else None,
                timestamp=to_naive_utc(message.date) if message.date else None,
            )
        except Exception as e:
            logger.error(f"Error caching message in chat {chat.id}: {e}", exc_info=True)

    # =========================================================================
    # Commands
    # =========================================================================

    async def handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Short help in private chat."""
        await update.effective_message.reply_text(START_TEXT, parse_mode=ParseMode.HTML)

    async def handle_tldr(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Summarize a timeframe, a message count, or everything since a replied-to message."""
        chat = update.effective_chat
        message = update.effective_message
        user = update.effective_user
        if not chat or not message:
            return

        reply_to = message.reply_to_message
        request = SummaryRequest(
            chat_id=chat.id,
            user_id=user.id if user else 0,
            chat_kind=ChatKind.from_telegram(chat.type),
            argument=' '.join(context.args or []),
            reply_to_message_id=reply_to.message_id if reply_to else None,
        )

        try:
            if request.chat_kind.is_group:
                await context.bot.send_chat_action(chat.id, ChatAction.TYPING)
            result = await self.pipeline.handle_request(request)
        except (SummaryRequestError, SummarizationError) as e:
            logger.info(f"Summary request in chat {chat.id} failed: {e}")
            await message.reply_text(f"❌ {e.user_message}")
            return
        except Exception as e:
            logger.error(f"Unexpected error handling /tldr in chat {chat.id}: {e}", exc_info=True)
            await message.reply_text(GENERIC_ERROR_TEXT)
            return

        await self._reply_summary(message, result)

    async def _reply_summary(self, message, result: SummaryResult) -> None:
        """Reply with the rendered summary, falling back to plain text.

        Splitting can cut through an HTML tag or entity, which Telegram
        rejects; the plain-text fallback always parses.
        """
        text = format_summary_message(result.text, result.label, result.message_count)
        try:
            for part in split_long_message(text):
                await message.reply_text(part, parse_mode=ParseMode.HTML, disable_web_page_preview=True)
            return
        except TelegramError as e:
            logger.warning(f"HTML summary rejected in chat {message.chat_id}, resending as plain text: {e}")

        plain = f"📝 TLDR Summary ({result.label})\n\n{result.text}"
        try:
            for part in split_long_message(plain):
                await message.reply_text(part, disable_web_page_preview=True)
        except TelegramError as e:
            logger.error(f"Could not deliver summary to chat {message.chat_id}: {e}", exc_info=True)

    async def handle_list_groups(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """List the groups the calling user set up, with their setup status."""
        message = update.effective_message
        user = update.effective_user
        if not message or not user:
            return

        try:
            groups = self.db_repo.list_groups_for_user(user.id)
        except Exception as e:
            logger.error(f"Error listing groups for user {user.id}: {e}", exc_info=True)
            await message.reply_text("❌ Error retrieving groups.")
            return

        if not groups:
            await message.reply_text("📭 You have not configured any groups yet.")
            return

        lines = ["📋 Your configured groups:", ""]
        for index, group in enumerate(groups, start=1):
            if group.is_pending:
                status = "⏳ Pending setup"
            elif group.enabled:
                status = "✅ Configured"
            else:
                status = "❌ Disabled"
            lines.append(f"{index}. Group ID: {group.chat_id} {status}")
        await message.reply_text("\n".join(lines))

    async def handle_remove_group(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Remove a group's configuration, cached messages and summaries.

        Private chat only. Allowed for the user who set the group up and for
        the group's current administrators.
        """
        chat = update.effective_chat
        message = update.effective_message
        user = update.effective_user
        if not chat or not message or not user:
            return

        if ChatKind.from_telegram(chat.type) != ChatKind.PRIVATE:
            await message.reply_text("❌ This command can only be used in private chat.")
            return

        try:
            chat_id = int(context.args[0])
        except (IndexError, TypeError, ValueError):
            await message.reply_text("Usage: /remove_group <chat id>")
            return

        group = self.db_repo.get_group_config(chat_id)
        if group is None:
            await message.reply_text(f"❌ Group {chat_id} is not configured.")
            return

        allowed = group.setup_by_user_id == user.id
        if not allowed and self.membership is not None:
            allowed = await self.membership.is_admin(chat_id, user.id)
        if not allowed:
            logger.info(f"User {user.id} refused removal of chat {chat_id}")
            await message.reply_text("❌ Only the user who set up this group or one of its admins can remove it.")
            return

        self.db_repo.delete_group_config(chat_id)
        logger.info(f"User {user.id} removed chat {chat_id}")
        await message.reply_text(f"✅ Removed group {chat_id} and its cached data.")

    async def handle_tldr_info(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Show the group's setup status, style and schedule."""
        chat = update.effective_chat
        message = update.effective_message
        if not chat or not message:
            return

        if not ChatKind.from_telegram(chat.type).is_group:
            await message.reply_text("❌ This command can only be used in a group.")
            return

        try:
            await message.reply_text(self.build_info_text(chat.id), parse_mode=ParseMode.HTML)
        except Exception as e:
            logger.error(f"Error getting TLDR info for chat {chat.id}: {e}", exc_info=True)
            await message.reply_text("❌ Error retrieving info.")

    def build_info_text(self, chat_id: int) -> str:
        """Render /tldr_info for a chat."""
        group = self.db_repo.get_group_config(chat_id)
        if group is None:
            return "❌ This group is not configured."

        settings = self.db_repo.get_group_settings(chat_id)
        status = "⏳ Pending setup" if group.is_pending else "✅ Configured and ready"
        enabled = "✅ Enabled" if group.enabled else "❌ Disabled"
        if settings.schedule_enabled:
            schedule = f"{settings.schedule_frequency} at {settings.schedule_time} UTC"
        else:
            schedule = "off"

        return (
            "ℹ️ <b>TLDR Info</b>\n\n"
            f"Status: {status}\n"
            f"Bot: {enabled}\n"
            f"Style: {settings.summary_style}"
            f"{' (custom prompt)' if settings.custom_prompt else ''}\n"
            f"Scheduled summary: {schedule}\n\n"
            "<i>Use /tldr [timeframe] or reply to a message with /tldr</i>"
        )

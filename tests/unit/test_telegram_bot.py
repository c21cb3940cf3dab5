"""Tests for tldr_bot/messaging/telegram_bot.py"""

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from telegram import Chat, Message, MessageEntity, Update, User
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import MessageHandler

from tldr_bot.ai.errors import QuotaExceededError
from tldr_bot.messaging.telegram_bot import (
    CACHE_HANDLER_GROUP,
    GENERIC_ERROR_TEXT,
    START_TEXT,
    TldrTelegramBot,
)
from tldr_bot.pipeline.models import ChatKind, RateLimitedError, SummaryResult
from tldr_bot.utils.message_filter import filter_messages


def _update(text="hello", chat_type='supergroup', chat_id=-100, reply_to=None, caption=None, user_id=7):
    message = MagicMock()
    message.text = text
    message.caption = caption
    message.message_id = 10
    message.chat_id = chat_id
    message.date = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
    message.from_user = SimpleNamespace(id=user_id, username="alice", full_name="Alice Smith")
    message.reply_to_message = SimpleNamespace(message_id=reply_to) if reply_to else None
    message.reply_text = AsyncMock()

    update = MagicMock()
    update.effective_chat = SimpleNamespace(id=chat_id, type=chat_type)
    update.effective_message = message
    update.effective_user = message.from_user
    return update


def _context(*args):
    context = MagicMock()
    context.args = list(args)
    context.bot.send_chat_action = AsyncMock()
    return context


def _telegram_update(text, chat_type=Chat.SUPERGROUP):
    """A real python-telegram-bot Update, for exercising handler filters."""
    entities = []
    if text.startswith('/'):
        entities = [MessageEntity(type=MessageEntity.BOT_COMMAND, offset=0, length=len(text.split()[0]))]
    message = Message(
        message_id=1,
        date=datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc),
        chat=Chat(id=-100, type=chat_type),
        from_user=User(id=7, first_name="Alice", is_bot=False),
        text=text,
        entities=entities,
    )
    return Update(update_id=1, message=message)


@pytest.fixture
def pipeline():
    mock = MagicMock()
    mock.handle_request = AsyncMock(return_value=SummaryResult(
        text="**Topics**\n* one",
        label="6h",
        message_count=5,
    ))
    return mock


@pytest.fixture
def membership():
    mock = MagicMock()
    mock.is_admin = AsyncMock(return_value=False)
    return mock


@pytest.fixture
def bot(repo, pipeline, membership):
    return TldrTelegramBot(MagicMock(), repo, pipeline, membership)


class TestHandlerRegistration:

    def test_registers_commands_and_cache_handler(self, repo, pipeline):
        application = MagicMock()

        TldrTelegramBot(application, repo, pipeline)

        assert application.add_handler.call_count == 6
        cache_call = application.add_handler.call_args_list[-1]
        assert isinstance(cache_call.args[0], MessageHandler)
        assert cache_call.kwargs['group'] == CACHE_HANDLER_GROUP

    def _cache_handler(self, repo, pipeline):
        application = MagicMock()
        TldrTelegramBot(application, repo, pipeline)
        return application.add_handler.call_args_list[-1].args[0]

    def test_cache_handler_accepts_commands(self, repo, pipeline):
        """Commands reach the cache so exclude_commands can decide at summary time."""
        handler = self._cache_handler(repo, pipeline)

        assert handler.check_update(_telegram_update("/tldr 6h"))
        assert handler.check_update(_telegram_update("plain text"))

    def test_cache_handler_ignores_private_chats(self, repo, pipeline):
        handler = self._cache_handler(repo, pipeline)

        assert not handler.check_update(_telegram_update("hello", chat_type=Chat.PRIVATE))


class TestMessageCaching:
    """Tests for handle_group_message."""

    @pytest.mark.asyncio
    async def test_caches_for_active_group(self, bot, repo, active_group):
        await bot.handle_group_message(_update("hello world"), _context())

        messages = repo.get_messages_from_id(-100, 0)
        assert len(messages) == 1
        assert messages[0].content == "hello world"
        assert messages[0].username == "alice"
        assert messages[0].display_name == "Alice Smith"
        assert messages[0].timestamp == datetime(2024, 3, 4, 9, 0)

    @pytest.mark.asyncio
    async def test_caption_cached(self, bot, repo, active_group):
        await bot.handle_group_message(_update(text=None, caption="photo caption"), _context())

        assert repo.get_messages_from_id(-100, 0)[0].content == "photo caption"

    @pytest.mark.asyncio
    async def test_edit_updates_cached_content(self, bot, repo, active_group):
        await bot.handle_group_message(_update("first"), _context())
        await bot.handle_group_message(_update("edited"), _context())

        messages = repo.get_messages_from_id(-100, 0)
        assert [m.content for m in messages] == ["edited"]

    @pytest.mark.asyncio
    async def test_long_content_truncated(self, bot, repo, active_group):
        await bot.handle_group_message(_update("x" * 6000), _context())

        assert len(repo.get_messages_from_id(-100, 0)[0].content) == 5000

    @pytest.mark.asyncio
    async def test_unconfigured_and_pending_groups_not_cached(self, bot, repo):
        repo.create_group_config(-200)

        await bot.handle_group_message(_update(chat_id=-200), _context())
        await bot.handle_group_message(_update(chat_id=-300), _context())

        assert repo.get_message_count_by_chat() == {}

    @pytest.mark.asyncio
    async def test_disabled_group_not_cached(self, bot, repo, active_group):
        repo.set_group_enabled(-100, False)

        await bot.handle_group_message(_update(), _context())

        assert repo.get_message_count_by_chat() == {}

    @pytest.mark.asyncio
    async def test_commands_cached_and_settings_decide(self, bot, repo, active_group):
        """Cached commands are summarized only when exclude_commands is off."""
        await bot.handle_group_message(_update("/tldr 6h"), _context())
        cached = repo.get_messages_from_id(-100, 0)
        assert [m.content for m in cached] == ["/tldr 6h"]

        assert filter_messages(cached, repo.get_group_settings(-100)) == []
        settings = repo.update_group_settings(-100, exclude_commands=False)
        assert len(filter_messages(cached, settings)) == 1


class TestTldrCommand:
    """Tests for handle_tldr."""

    @pytest.mark.asyncio
    async def test_builds_request_and_replies_html(self, bot, pipeline):
        update = _update("/tldr 6h")
        context = _context("6h")

        await bot.handle_tldr(update, context)

        request = pipeline.handle_request.await_args.args[0]
        assert request.chat_id == -100
        assert request.user_id == 7
        assert request.chat_kind == ChatKind.SUPERGROUP
        assert request.argument == "6h"
        assert request.reply_to_message_id is None

        context.bot.send_chat_action.assert_awaited_once_with(-100, ChatAction.TYPING)
        reply = update.effective_message.reply_text.await_args
        assert "TLDR Summary" in reply.args[0]
        assert "<b>Topics</b>" in reply.args[0]
        assert reply.kwargs['parse_mode'] == ParseMode.HTML

    @pytest.mark.asyncio
    async def test_reply_passes_message_id(self, bot, pipeline):
        await bot.handle_tldr(_update("/tldr", reply_to=55), _context())

        assert pipeline.handle_request.await_args.args[0].reply_to_message_id == 55

    @pytest.mark.asyncio
    async def test_private_chat_skips_typing(self, bot, pipeline):
        context = _context()

        await bot.handle_tldr(_update("/tldr", chat_type='private', chat_id=7), context)

        context.bot.send_chat_action.assert_not_called()
        assert pipeline.handle_request.await_args.args[0].chat_kind == ChatKind.PRIVATE

    @pytest.mark.asyncio
    async def test_request_error_replied(self, bot, pipeline):
        pipeline.handle_request.side_effect = RateLimitedError(12)
        update = _update("/tldr")

        await bot.handle_tldr(update, _context())

        text = update.effective_message.reply_text.await_args.args[0]
        assert text.startswith("❌")
        assert "12 seconds" in text

    @pytest.mark.asyncio
    async def test_generation_error_replied(self, bot, pipeline):
        pipeline.handle_request.side_effect = QuotaExceededError()
        update = _update("/tldr")

        await bot.handle_tldr(update, _context())

        text = update.effective_message.reply_text.await_args.args[0]
        assert text == f"❌ {QuotaExceededError.user_message}"

    @pytest.mark.asyncio
    async def test_unexpected_error_generic_reply(self, bot, pipeline):
        pipeline.handle_request.side_effect = RuntimeError("boom")
        update = _update("/tldr")

        await bot.handle_tldr(update, _context())

        update.effective_message.reply_text.assert_awaited_once_with(GENERIC_ERROR_TEXT)

    @pytest.mark.asyncio
    async def test_long_summary_split(self, bot, pipeline, very_long_text):
        pipeline.handle_request.return_value = SummaryResult(text=very_long_text, label="day", message_count=900)
        update = _update("/tldr day")

        await bot.handle_tldr(update, _context("day"))

        assert update.effective_message.reply_text.await_count >= 3

    @pytest.mark.asyncio
    async def test_rejected_html_resent_as_plain_text(self, bot, pipeline):
        """If Telegram refuses the HTML, the user still gets the summary."""
        update = _update("/tldr 6h")
        update.effective_message.reply_text.side_effect = [BadRequest("Can't parse entities"), None]

        await bot.handle_tldr(update, _context("6h"))

        last = update.effective_message.reply_text.await_args
        assert "parse_mode" not in last.kwargs
        assert "TLDR Summary (6h)" in last.args[0]
        assert "**Topics**" in last.args[0]

    @pytest.mark.asyncio
    async def test_plain_text_failure_is_contained(self, bot, pipeline):
        update = _update("/tldr 6h")
        update.effective_message.reply_text.side_effect = BadRequest("Chat not found")

        await bot.handle_tldr(update, _context("6h"))

        assert update.effective_message.reply_text.await_count == 2


class TestInfoAndStart:
    """Tests for /tldr_info and /start."""

    @pytest.mark.asyncio
    async def test_start(self, bot):
        update = _update("/start", chat_type='private', chat_id=7)

        await bot.handle_start(update, _context())

        update.effective_message.reply_text.assert_awaited_once_with(START_TEXT, parse_mode=ParseMode.HTML)

    @pytest.mark.asyncio
    async def test_info_private_rejected(self, bot):
        update = _update("/tldr_info", chat_type='private', chat_id=7)

        await bot.handle_tldr_info(update, _context())

        assert "only be used in a group" in update.effective_message.reply_text.await_args.args[0]

    def test_info_unconfigured(self, bot):
        assert "not configured" in bot.build_info_text(-999)

    def test_info_pending(self, bot, repo):
        repo.create_group_config(-200)

        assert "Pending setup" in bot.build_info_text(-200)

    def test_info_active_with_schedule(self, bot, repo, active_group):
        repo.update_group_settings(
            -100,
            summary_style='brief',
            custom_prompt="Focus {{messages}}",
            schedule_enabled=True,
            schedule_frequency='weekly',
            schedule_time='08:30',
        )

        text = bot.build_info_text(-100)

        assert "Configured and ready" in text
        assert "Enabled" in text
        assert "brief (custom prompt)" in text
        assert "weekly at 08:30 UTC" in text

    def test_info_disabled(self, bot, repo, active_group):
        repo.set_group_enabled(-100, False)

        assert "Disabled" in bot.build_info_text(-100)


class TestGroupManagementCommands:
    """Tests for /list_groups and /remove_group."""

    @pytest.mark.asyncio
    async def test_list_groups(self, bot, repo, active_group):
        repo.create_group_config(-200, setup_by_user_id=42)
        repo.create_group_config(-300, setup_by_user_id=7)
        update = _update("/list_groups", chat_type='private', chat_id=42, user_id=42)

        await bot.handle_list_groups(update, _context())

        text = update.effective_message.reply_text.await_args.args[0]
        assert "Group ID: -100 ✅ Configured" in text
        assert "Group ID: -200 ⏳ Pending setup" in text
        assert "-300" not in text

    @pytest.mark.asyncio
    async def test_list_groups_empty(self, bot):
        update = _update("/list_groups", chat_type='private', chat_id=7)

        await bot.handle_list_groups(update, _context())

        assert "not configured any groups" in update.effective_message.reply_text.await_args.args[0]

    @pytest.mark.asyncio
    async def test_remove_by_setup_user(self, bot, repo, active_group, membership):
        update = _update("/remove_group", chat_type='private', chat_id=42, user_id=42)

        await bot.handle_remove_group(update, _context("-100"))

        assert repo.get_group_config(-100) is None
        membership.is_admin.assert_not_called()

    @pytest.mark.asyncio
    async def test_remove_by_group_admin(self, bot, repo, active_group, membership):
        membership.is_admin.return_value = True
        update = _update("/remove_group", chat_type='private', chat_id=7, user_id=7)

        await bot.handle_remove_group(update, _context("-100"))

        membership.is_admin.assert_awaited_once_with(-100, 7)
        assert repo.get_group_config(-100) is None

    @pytest.mark.asyncio
    async def test_remove_refused_for_other_users(self, bot, repo, active_group):
        update = _update("/remove_group", chat_type='private', chat_id=7, user_id=7)

        await bot.handle_remove_group(update, _context("-100"))

        assert repo.get_group_config(-100) is not None
        assert "Only the user who set up" in update.effective_message.reply_text.await_args.args[0]

    @pytest.mark.asyncio
    async def test_remove_without_membership_only_setup_user(self, repo, pipeline, active_group):
        bot = TldrTelegramBot(MagicMock(), repo, pipeline)
        update = _update("/remove_group", chat_type='private', chat_id=7, user_id=7)

        await bot.handle_remove_group(update, _context("-100"))

        assert repo.get_group_config(-100) is not None

    @pytest.mark.asyncio
    async def test_remove_in_group_rejected(self, bot, repo, active_group):
        update = _update("/remove_group", user_id=42)

        await bot.handle_remove_group(update, _context("-100"))

        assert repo.get_group_config(-100) is not None
        assert "private chat" in update.effective_message.reply_text.await_args.args[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("args", [(), ("abc",)])
    async def test_remove_usage(self, bot, args):
        update = _update("/remove_group", chat_type='private', chat_id=42, user_id=42)

        await bot.handle_remove_group(update, _context(*args))

        assert update.effective_message.reply_text.await_args.args[0].startswith("Usage")

    @pytest.mark.asyncio
    async def test_remove_unknown_group(self, bot):
        update = _update("/remove_group", chat_type='private', chat_id=42, user_id=42)

        await bot.handle_remove_group(update, _context("-999"))

        assert "not configured" in update.effective_message.reply_text.await_args.args[0]

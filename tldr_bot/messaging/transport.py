"""Outbound Telegram messages."""

import logging
from typing import Optional

from telegram import Bot
from telegram.constants import ParseMode

logger = logging.getLogger(__name__)


class TelegramTransport:
    """Sends pre-rendered HTML messages to Telegram chats."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(
        self,
        chat_id: int,
        html_text: str,
        reply_to_message_id: Optional[int] = None
    ):
        """Send an HTML message.

        Args:
            chat_id: Target chat
            html_text: Text already escaped/rendered for Telegram HTML
            reply_to_message_id: Optional message to reply to
        """
        return await self.bot.send_message(
            chat_id=chat_id,
            text=html_text,
            parse_mode=ParseMode.HTML,
            reply_to_message_id=reply_to_message_id,
            disable_web_page_preview=True,
        )

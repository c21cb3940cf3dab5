"""Bot membership checks against the Telegram Bot API."""

import logging

from telegram import Bot, ChatMember
from telegram.error import BadRequest, Forbidden, TelegramError

logger = logging.getLogger(__name__)

ADMIN_STATUSES = (ChatMember.ADMINISTRATOR, ChatMember.OWNER)
GONE_STATUSES = (ChatMember.LEFT, ChatMember.BANNED)


class MembershipCheckError(Exception):
    """Membership could not be determined (network error, flood control, ...)."""


class TelegramMembership:
    """Answers "is the bot still in this chat?" and "is this user an admin?"."""

    def __init__(self, bot: Bot):
        self.bot = bot
        self._bot_id = None

    async def _get_bot_id(self) -> int:
        if self._bot_id is None:
            me = await self.bot.get_me()
            self._bot_id = me.id
        return self._bot_id

    async def is_still_member(self, chat_id: int) -> bool:
        """Check whether the bot is still a member of a chat.

        Returns:
            False if the bot left, was removed, or the chat no longer exists

        Raises:
            MembershipCheckError: If Telegram gave no definitive answer
        """
        try:
            member = await self.bot.get_chat_member(chat_id, await self._get_bot_id())
        except Forbidden:
            return False
        except BadRequest as e:
            if 'chat not found' in str(e).lower():
                return False
            raise MembershipCheckError(str(e)) from e
        except TelegramError as e:
            raise MembershipCheckError(str(e)) from e

        return member.status not in GONE_STATUSES

    async def is_admin(self, chat_id: int, user_id: int) -> bool:
        """Check whether a user administers a chat. Errors count as "no"."""
        try:
            member = await self.bot.get_chat_member(chat_id, user_id)
        except TelegramError as e:
            logger.warning(f"Could not check admin status in chat {chat_id}: {e}")
            return False
        return member.status in ADMIN_STATUSES

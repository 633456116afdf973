"""Chat platform adapter.

Wraps the aiogram ``Bot`` calls the engine needs. Every call is attempted
once: a ``TelegramAPIError`` (missing rights, user already gone, network)
is logged with context and reported as a falsy return value, never raised
into the message-handling loop.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Optional, Set

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ChatPermissions, InlineKeyboardMarkup

from wardbot.utils import utc_now

logger = logging.getLogger(__name__)

# A ban this short is a kick: the user may rejoin afterwards
KICK_BAN_SECONDS = 60

READONLY_PERMISSIONS = ChatPermissions(can_send_messages=False)

# Member rights restored on unmute or verification
MEMBER_PERMISSIONS = ChatPermissions(
    can_send_messages=True,
    can_send_audios=True,
    can_send_documents=True,
    can_send_photos=True,
    can_send_videos=True,
    can_send_video_notes=True,
    can_send_voice_notes=True,
    can_send_polls=True,
    can_send_other_messages=True,
    can_add_web_page_previews=True,
    can_change_info=False,
    can_invite_users=True,
    can_pin_messages=False,
)


class TelegramPlatform:
    def __init__(self, bot: Bot):
        self.bot = bot

    async def _call(self, description: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except TelegramAPIError as e:
            logger.warning(f"Platform call failed ({description}): {type(e).__name__}: {e}")
            return None

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        result = await self._call(
            f"delete message {message_id} in {chat_id}",
            self.bot.delete_message(chat_id=chat_id, message_id=message_id),
        )
        return bool(result)

    async def restrict_member(
        self,
        chat_id: int,
        user_id: int,
        can_send: bool,
        until: Optional[datetime] = None,
    ) -> bool:
        """Toggle a member's permission to send messages."""
        result = await self._call(
            f"restrict user {user_id} in {chat_id} can_send={can_send}",
            self.bot.restrict_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                permissions=MEMBER_PERMISSIONS if can_send else READONLY_PERMISSIONS,
                until_date=until,
            ),
        )
        return bool(result)

    async def ban_member(self, chat_id: int, user_id: int) -> bool:
        result = await self._call(
            f"ban user {user_id} in {chat_id}",
            self.bot.ban_chat_member(chat_id=chat_id, user_id=user_id),
        )
        return bool(result)

    async def unban_member(self, chat_id: int, user_id: int) -> bool:
        result = await self._call(
            f"unban user {user_id} in {chat_id}",
            self.bot.unban_chat_member(chat_id=chat_id, user_id=user_id, only_if_banned=True),
        )
        return bool(result)

    async def remove_member(self, chat_id: int, user_id: int) -> bool:
        result = await self._call(
            f"remove user {user_id} from {chat_id}",
            self.bot.ban_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                until_date=utc_now() + timedelta(seconds=KICK_BAN_SECONDS),
            ),
        )
        return bool(result)

    async def forward_message(self, to_chat_id: int, from_chat_id: int, message_id: int) -> Optional[int]:
        result = await self._call(
            f"forward message {message_id} from {from_chat_id} to {to_chat_id}",
            self.bot.forward_message(chat_id=to_chat_id, from_chat_id=from_chat_id, message_id=message_id),
        )
        return result.message_id if result else None

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> Optional[int]:
        result = await self._call(
            f"send message to {chat_id}",
            self.bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup),
        )
        return result.message_id if result else None

    async def edit_text(self, chat_id: int, message_id: int, text: str) -> bool:
        """Replace a prompt's text, dropping its buttons."""
        result = await self._call(
            f"edit message {message_id} in {chat_id}",
            self.bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id, reply_markup=None),
        )
        return bool(result)

    async def get_administrator_ids(self, chat_id: int) -> Optional[Set[int]]:
        admins = await self._call(
            f"get administrators of {chat_id}",
            self.bot.get_chat_administrators(chat_id=chat_id),
        )
        if admins is None:
            return None
        return {admin.user.id for admin in admins}

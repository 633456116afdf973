"""Middleware that runs every group text message through the moderation pipeline."""

import logging
from datetime import datetime
from typing import Callable, Awaitable, Dict, Any, Optional
from aiogram import BaseMiddleware
from aiogram.types import Message

from wardbot.moderation.engine import ModerationEngine
from wardbot.moderation.pipeline import InboundMessage
from wardbot.services.admins import AdminDirectory
from wardbot.utils import display_name, utc_now

logger = logging.getLogger(__name__)

GROUP_CHAT_TYPES = ("group", "supergroup")


def to_inbound(event: Message, received_at: datetime) -> InboundMessage:
    # Stamped with the worker clock, the same clock mute deadlines use.
    # Telegram's message.date is truncated to whole seconds.
    return InboundMessage(
        chat_id=event.chat.id,
        user_id=event.from_user.id,
        message_id=event.message_id,
        text=event.text,
        sent_at=received_at,
        author_name=display_name(event.from_user),
    )


class ModerationMiddleware(BaseMiddleware):
    def __init__(self, engine: ModerationEngine, admins: Optional[AdminDirectory] = None):
        self.engine = engine
        self.admins = admins

    async def _is_admin_command(self, event: Message) -> bool:
        """Bot commands from chat administrators are not moderated."""
        if self.admins is None or not event.text.startswith("/"):
            return False
        return await self.admins.is_admin(event.chat.id, event.from_user.id)

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any],
    ) -> Any:
        # Only text from real members of group chats
        if (
            event.chat.type not in GROUP_CHAT_TYPES
            or not event.text
            or event.from_user is None
            or event.from_user.is_bot
            or event.sender_chat is not None
        ):
            return await handler(event, data)

        try:
            verdict = None
            if not await self._is_admin_command(event):
                verdict = await self.engine.handle_message(to_inbound(event, utc_now()))
        except Exception as e:
            # An engine fault must not block the chat: treat the message as allowed
            logger.exception(f"Moderation failed for message {event.message_id} in chat {event.chat.id}: {e}")
            return await handler(event, data)

        if verdict is not None and verdict.deletes:
            return  # Message removed, stop further handling

        return await handler(event, data)

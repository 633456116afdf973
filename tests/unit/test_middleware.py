"""Tests for ModerationMiddleware."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from wardbot.middleware.moderation import ModerationMiddleware
from wardbot.moderation.pipeline import Stage, Verdict
from wardbot.services.admins import AdminDirectory
from wardbot.utils import utc_now
from conftest import ADMIN_ID, CHAT_ID, USER_ID, T0


def make_message(text="hello", chat_type="supergroup", is_bot=False, sender_chat=None, user_id=USER_ID):
    message = MagicMock()
    message.chat.id = CHAT_ID
    message.chat.type = chat_type
    message.text = text
    message.message_id = 100
    message.date = T0
    message.sender_chat = sender_chat
    message.from_user.id = user_id
    message.from_user.is_bot = is_bot
    message.from_user.username = "someone"
    return message


def make_engine(verdict: Verdict) -> MagicMock:
    engine = MagicMock()
    engine.handle_message = AsyncMock(return_value=verdict)
    return engine


@pytest.mark.asyncio
async def test_allowed_message_reaches_handler():
    engine = make_engine(Verdict(Stage.ALLOWED))
    handler = AsyncMock(return_value="handled")

    before = utc_now()
    result = await ModerationMiddleware(engine)(handler, make_message(), {})

    assert result == "handled"
    handler.assert_awaited_once()
    inbound = engine.handle_message.await_args.args[0]
    assert inbound.chat_id == CHAT_ID
    assert inbound.user_id == USER_ID
    assert inbound.author_name == "@someone"
    # Stamped on receipt by the worker clock, not with Telegram's message.date
    assert before <= inbound.sent_at <= utc_now()


@pytest.mark.asyncio
async def test_deleted_message_stops_handling():
    engine = make_engine(Verdict(Stage.KEYWORD, keyword="spam"))
    handler = AsyncMock()

    result = await ModerationMiddleware(engine)(handler, make_message("spam"), {})

    assert result is None
    handler.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [
    make_message(chat_type="private"),
    make_message(text=None),
    make_message(is_bot=True),
    make_message(sender_chat=MagicMock()),
])
async def test_skipped_messages_bypass_engine(message):
    engine = make_engine(Verdict(Stage.BANNED))
    handler = AsyncMock()

    await ModerationMiddleware(engine)(handler, message, {})

    engine.handle_message.assert_not_awaited()
    handler.assert_awaited_once()


@pytest.mark.asyncio
async def test_engine_failure_lets_message_through():
    engine = MagicMock()
    engine.handle_message = AsyncMock(side_effect=RuntimeError("boom"))
    handler = AsyncMock()

    await ModerationMiddleware(engine)(handler, make_message(), {})

    handler.assert_awaited_once()


@pytest.mark.asyncio
async def test_admin_command_with_keyword_reaches_handler(engine, platform, audit):
    middleware = ModerationMiddleware(engine, AdminDirectory(platform))
    handler = AsyncMock()

    await middleware(handler, make_message("/ban 555 spam", user_id=ADMIN_ID), {})

    handler.assert_awaited_once()
    platform.delete_message.assert_not_awaited()
    assert engine.escalations.pending() == []
    assert audit.records == []


@pytest.mark.asyncio
async def test_admin_can_disable_slow_mode_while_throttled(engine, platform):
    engine.store.set_chat_slow_mode(CHAT_ID, 60)
    middleware = ModerationMiddleware(engine, AdminDirectory(platform))
    handler = AsyncMock()

    await middleware(handler, make_message("hello", user_id=ADMIN_ID), {})
    await middleware(handler, make_message("/slowmode 0", user_id=ADMIN_ID), {})

    assert handler.await_count == 2


@pytest.mark.asyncio
async def test_member_command_is_still_moderated(engine, platform):
    middleware = ModerationMiddleware(engine, AdminDirectory(platform))
    handler = AsyncMock()

    await middleware(handler, make_message("/ban spam"), {})

    handler.assert_not_awaited()
    assert len(engine.escalations.pending()) == 1


@pytest.mark.asyncio
async def test_mute_end_compared_on_the_worker_clock(engine):
    now = utc_now()
    mute_until = now - timedelta(milliseconds=1)
    engine.store.apply_mute(CHAT_ID, USER_ID, mute_until, now - timedelta(hours=1))
    message = make_message("hello")
    # Telegram's whole-second date falls before the mute end
    message.date = (mute_until - timedelta(seconds=1)).replace(microsecond=0)
    handler = AsyncMock()

    await ModerationMiddleware(engine)(handler, message, {})

    handler.assert_awaited_once()

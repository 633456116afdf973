"""Tests for ModerationEngine message handling and admin enforcement."""

from datetime import timedelta

import pytest

from wardbot.moderation.engine import ModerationEngine
from wardbot.moderation.models import ActionType, Resolution
from wardbot.moderation.pipeline import InboundMessage, Stage
from conftest import ADMIN_ID, CHAT_ID, REVIEW_CHAT_ID, USER_ID, RecordingAudit, at, make_platform


def message(text: str, seconds: float = 0, message_id: int = 100, user_id: int = USER_ID) -> InboundMessage:
    return InboundMessage(
        chat_id=CHAT_ID,
        user_id=user_id,
        message_id=message_id,
        text=text,
        sent_at=at(seconds),
        author_name="@someone",
    )


@pytest.mark.asyncio
async def test_allowed_message_has_no_side_effects(engine, platform, audit):
    verdict = await engine.handle_message(message("good morning"))

    assert verdict.stage == Stage.ALLOWED
    platform.delete_message.assert_not_awaited()
    assert audit.records == []


@pytest.mark.asyncio
async def test_banned_user_message_deleted_without_later_stages(engine, platform, audit):
    await engine.ban(CHAT_ID, USER_ID, ADMIN_ID, "spam bot", at(0))
    audit.records.clear()

    verdict = await engine.handle_message(message("spam spam", seconds=5))

    assert verdict.stage == Stage.BANNED
    platform.delete_message.assert_awaited_once_with(CHAT_ID, 100)
    platform.forward_message.assert_not_awaited()
    assert engine.escalations.pending() == []
    assert audit.actions() == [ActionType.DELETE]
    assert audit.records[0].moderator_id is None


@pytest.mark.asyncio
async def test_keyword_message_escalated_once(engine, platform, audit):
    verdict = await engine.handle_message(message("cheap ADVERTISEMENT here"))

    assert verdict.stage == Stage.KEYWORD
    pending = engine.escalations.pending()
    assert len(pending) == 1
    item = pending[0]
    assert item.matched_keyword == "advertisement"
    assert item.author_user_id == USER_ID
    assert item.resolution == Resolution.PENDING
    assert item.forwarded_message_id == 900
    assert item.prompt_message_id == 901
    assert engine.escalations.find_by_message(900) is item

    platform.forward_message.assert_awaited_once_with(REVIEW_CHAT_ID, CHAT_ID, 100)
    platform.delete_message.assert_awaited_once_with(CHAT_ID, 100)
    assert audit.actions() == [ActionType.DELETE]


@pytest.mark.asyncio
async def test_keyword_message_forwarded_before_deletion(engine, platform):
    calls = []
    platform.forward_message.side_effect = lambda *a: calls.append("forward") or 900
    platform.delete_message.side_effect = lambda *a: calls.append("delete") or True

    await engine.handle_message(message("scam"))

    assert calls == ["forward", "delete"]


@pytest.mark.asyncio
async def test_platform_failure_still_records_decision(engine, platform, audit):
    platform.delete_message.return_value = False
    engine.store.apply_mute(CHAT_ID, USER_ID, until=at(600), now=at(0))

    verdict = await engine.handle_message(message("hi", seconds=1))

    assert verdict.deletes
    assert audit.actions() == [ActionType.DELETE]
    # the next message is still processed normally
    verdict = await engine.handle_message(message("hi", seconds=2, message_id=101))
    assert verdict.stage == Stage.MUTED


@pytest.mark.asyncio
async def test_escalation_without_review_chat_still_creates_item(audit):
    platform = make_platform()
    engine = ModerationEngine(platform, audit, keywords=["spam"], review_chat_id=None)

    await engine.handle_message(message("spam"))

    assert len(engine.escalations.pending()) == 1
    platform.forward_message.assert_not_awaited()
    platform.delete_message.assert_awaited_once()


@pytest.mark.asyncio
async def test_ban_records_and_calls_platform(engine, platform, audit):
    state = await engine.ban(CHAT_ID, USER_ID, ADMIN_ID, "flooding", at(0))

    assert state.banned
    platform.ban_member.assert_awaited_once_with(CHAT_ID, USER_ID)
    assert len(audit.records) == 1
    record = audit.records[0]
    assert record.action == ActionType.BAN
    assert record.target_user_id == USER_ID
    assert record.moderator_id == ADMIN_ID
    assert record.created_at == at(0)


@pytest.mark.asyncio
async def test_unban_resets_state(engine, platform, audit):
    await engine.ban(CHAT_ID, USER_ID, ADMIN_ID, None, at(0))
    await engine.unban(CHAT_ID, USER_ID, ADMIN_ID, None, at(1))

    assert not engine.store.get(CHAT_ID, USER_ID).banned
    platform.unban_member.assert_awaited_once_with(CHAT_ID, USER_ID)
    assert audit.actions() == [ActionType.BAN, ActionType.UNBAN]
    verdict = await engine.handle_message(message("back again", seconds=2))
    assert verdict.stage == Stage.ALLOWED


@pytest.mark.asyncio
async def test_mute_sets_expiry_and_restricts(engine, platform, audit):
    state = await engine.mute(CHAT_ID, USER_ID, ADMIN_ID, 30, "rude", at(0))

    assert state.mute_until == at(0) + timedelta(minutes=30)
    platform.restrict_member.assert_awaited_once_with(
        CHAT_ID, USER_ID, can_send=False, until=at(0) + timedelta(minutes=30)
    )
    assert audit.records[0].action == ActionType.MUTE
    assert audit.records[0].duration_minutes == 30


@pytest.mark.asyncio
async def test_unmute_lifts_mute(engine, platform, audit):
    await engine.mute(CHAT_ID, USER_ID, ADMIN_ID, 30, None, at(0))
    await engine.unmute(CHAT_ID, USER_ID, ADMIN_ID, None, at(1))

    assert engine.store.get(CHAT_ID, USER_ID).mute_until is None
    platform.restrict_member.assert_awaited_with(CHAT_ID, USER_ID, can_send=True)
    assert audit.actions() == [ActionType.MUTE, ActionType.UNMUTE]


@pytest.mark.asyncio
async def test_chat_wide_slow_mode_recorded_without_target(engine, audit):
    await engine.set_slow_mode(CHAT_ID, 30, ADMIN_ID, at(0))

    assert engine.store.chat_slow_mode(CHAT_ID) == 30
    record = audit.records[0]
    assert record.action == ActionType.SLOWMODE_SET
    assert record.target_user_id is None
    assert record.reason == "Slow mode 30s"


@pytest.mark.asyncio
async def test_user_slow_mode_then_throttle(engine, audit):
    await engine.set_slow_mode(CHAT_ID, 30, ADMIN_ID, at(0), user_id=USER_ID)

    assert (await engine.handle_message(message("one", seconds=1))).stage == Stage.ALLOWED
    assert (await engine.handle_message(message("two", seconds=11, message_id=101))).stage == Stage.SLOW_MODE
    assert (await engine.handle_message(message("three", seconds=32, message_id=102))).stage == Stage.ALLOWED
    assert audit.actions() == [ActionType.SLOWMODE_SET, ActionType.DELETE]


@pytest.mark.asyncio
async def test_audit_failure_does_not_roll_back_ban(platform):
    engine = ModerationEngine(platform, RecordingAudit(fail=True))

    await engine.ban(CHAT_ID, USER_ID, ADMIN_ID, None, at(0))

    assert engine.store.get(CHAT_ID, USER_ID).banned


@pytest.mark.asyncio
async def test_restore_bans_replays_latest_decision(platform, audit):
    first = ModerationEngine(platform, audit)
    await first.ban(CHAT_ID, USER_ID, ADMIN_ID, None, at(0))
    await first.ban(CHAT_ID, USER_ID + 1, ADMIN_ID, None, at(1))
    await first.unban(CHAT_ID, USER_ID + 1, ADMIN_ID, None, at(2))

    restarted = ModerationEngine(platform, audit)
    restored = await restarted.restore_bans()

    assert restored == 1
    assert restarted.store.get(CHAT_ID, USER_ID).banned
    assert not restarted.store.get(CHAT_ID, USER_ID + 1).banned

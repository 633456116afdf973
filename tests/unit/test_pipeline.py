"""Tests for the message decision pipeline."""

import pytest

from wardbot.moderation.keywords import KeywordFilter
from wardbot.moderation.pipeline import MessagePipeline, Stage
from wardbot.moderation.state_store import UserStateStore
from conftest import CHAT_ID, USER_ID, at


@pytest.fixture
def store():
    return UserStateStore()


@pytest.fixture
def pipeline(store):
    return MessagePipeline(store, KeywordFilter(["spam", "scam"]))


def test_plain_message_is_allowed_and_recorded(pipeline, store):
    verdict = pipeline.evaluate(CHAT_ID, USER_ID, "hello there", at(0))

    assert verdict.stage == Stage.ALLOWED
    assert not verdict.deletes
    assert store.get(CHAT_ID, USER_ID).last_message_at == at(0)


def test_banned_user_short_circuits_everything(pipeline, store):
    store.apply_ban(CHAT_ID, USER_ID)
    store.apply_mute(CHAT_ID, USER_ID, until=at(3600), now=at(0))

    verdict = pipeline.evaluate(CHAT_ID, USER_ID, "buy spam now", at(1))

    assert verdict.stage == Stage.BANNED
    assert verdict.keyword is None
    assert store.get(CHAT_ID, USER_ID).last_message_at is None


def test_muted_user_is_deleted_until_mute_ends(pipeline, store):
    store.apply_mute(CHAT_ID, USER_ID, until=at(60), now=at(0))

    assert pipeline.evaluate(CHAT_ID, USER_ID, "hi", at(59)).stage == Stage.MUTED
    # No unmute call needed once the mute has run out
    assert pipeline.evaluate(CHAT_ID, USER_ID, "hi", at(60)).stage == Stage.ALLOWED


def test_mute_checked_before_keyword(pipeline, store):
    store.apply_mute(CHAT_ID, USER_ID, until=at(60), now=at(0))

    assert pipeline.evaluate(CHAT_ID, USER_ID, "SCAM", at(1)).stage == Stage.MUTED


def test_slow_mode_sequence(pipeline, store):
    store.set_slow_mode(CHAT_ID, USER_ID, 30)

    assert pipeline.evaluate(CHAT_ID, USER_ID, "first", at(0)).stage == Stage.ALLOWED
    assert pipeline.evaluate(CHAT_ID, USER_ID, "second", at(10)).stage == Stage.SLOW_MODE
    # throttled message did not reset the timer
    assert store.get(CHAT_ID, USER_ID).last_message_at == at(0)
    assert pipeline.evaluate(CHAT_ID, USER_ID, "third", at(31)).stage == Stage.ALLOWED
    assert store.get(CHAT_ID, USER_ID).last_message_at == at(31)


def test_slow_mode_boundary_is_exclusive(pipeline, store):
    store.set_slow_mode(CHAT_ID, USER_ID, 30)
    pipeline.evaluate(CHAT_ID, USER_ID, "first", at(0))

    assert pipeline.evaluate(CHAT_ID, USER_ID, "again", at(30)).stage == Stage.ALLOWED


def test_keyword_match_is_case_insensitive_substring(pipeline):
    verdict = pipeline.evaluate(CHAT_ID, USER_ID, "This is a ScAmMeR offer", at(0))

    assert verdict.stage == Stage.KEYWORD
    assert verdict.keyword == "scam"
    assert verdict.reason == "Keyword violation: scam"


def test_keyword_message_does_not_reset_slow_mode_timer(pipeline, store):
    pipeline.evaluate(CHAT_ID, USER_ID, "spam", at(0))

    assert store.get(CHAT_ID, USER_ID).last_message_at is None


def test_slow_mode_checked_before_keyword(pipeline, store):
    store.set_slow_mode(CHAT_ID, USER_ID, 30)
    pipeline.evaluate(CHAT_ID, USER_ID, "hello", at(0))

    assert pipeline.evaluate(CHAT_ID, USER_ID, "spam", at(5)).stage == Stage.SLOW_MODE


def test_keyword_filter_ignores_blank_and_duplicate_keywords():
    keyword_filter = KeywordFilter([" Spam ", "spam", "", "SCAM"])

    assert keyword_filter.keywords == ["spam", "scam"]
    assert keyword_filter.match(None) is None
    assert keyword_filter.match("") is None
    assert keyword_filter.match("nothing here") is None

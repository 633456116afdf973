"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from wardbot.database.session import Base
from wardbot.database import models  # noqa: F401
from wardbot.moderation.engine import ModerationEngine
from wardbot.moderation.models import ActionType, ModerationActionRecord
from wardbot.moderation.platform import TelegramPlatform

CHAT_ID = -100123
USER_ID = 42
ADMIN_ID = 7
REVIEW_CHAT_ID = -100999
T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """Timestamp ``seconds`` after T0."""
    return T0 + timedelta(seconds=seconds)


class RecordingAudit:
    """In-memory audit sink used in place of the SQL sink."""

    def __init__(self, fail: bool = False):
        self.records: List[ModerationActionRecord] = []
        self.fail = fail

    async def record(self, record: ModerationActionRecord) -> bool:
        if self.fail:
            return False
        self.records.append(record)
        return True

    async def latest_bans(self) -> Dict:
        latest = {}
        for record in self.records:
            if record.action in (ActionType.BAN, ActionType.UNBAN):
                latest[(record.chat_id, record.target_user_id)] = record.action == ActionType.BAN
        return latest

    def actions(self) -> List[ActionType]:
        return [r.action for r in self.records]


def make_platform() -> AsyncMock:
    platform = AsyncMock(spec=TelegramPlatform)
    platform.delete_message.return_value = True
    platform.restrict_member.return_value = True
    platform.ban_member.return_value = True
    platform.unban_member.return_value = True
    platform.remove_member.return_value = True
    platform.forward_message.return_value = 900
    platform.send_message.return_value = 901
    platform.edit_text.return_value = True
    platform.get_administrator_ids.return_value = {ADMIN_ID}
    return platform


@pytest.fixture
def platform() -> AsyncMock:
    return make_platform()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def engine(platform, audit) -> ModerationEngine:
    return ModerationEngine(
        platform,
        audit,
        keywords=["spam", "advertisement", "scam", "violation"],
        review_chat_id=REVIEW_CHAT_ID,
    )


@pytest.fixture
async def test_db() -> AsyncGenerator:
    """Create test database."""
    db_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(db_engine, expire_on_commit=False)

    yield session_maker

    await db_engine.dispose()

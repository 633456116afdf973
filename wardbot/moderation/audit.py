"""Audit sink: append-only ModerationActionRecord storage.

A failed write never rolls back the moderation decision that produced the
record; it is logged at CRITICAL and reported to the caller as ``False``.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wardbot.database.models import ModerationAction
from wardbot.database.session import get_session
from wardbot.moderation.models import ActionType, ModerationActionRecord, StateKey
from wardbot.utils import as_utc

logger = logging.getLogger(__name__)


def _to_record(row: ModerationAction) -> ModerationActionRecord:
    return ModerationActionRecord(
        action=ActionType(row.action),
        target_user_id=row.target_user_id,
        chat_id=row.chat_id,
        moderator_id=row.moderator_id,
        reason=row.reason,
        duration_minutes=row.duration_minutes,
        created_at=as_utc(row.created_at),
    )


class SqlAuditSink:
    """Writes audit records to the ``moderation_actions`` table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session()

    async def record(self, record: ModerationActionRecord) -> bool:
        """
        Append one record.

        Returns:
            True if the row was committed, False if the write failed
        """
        row = ModerationAction(
            chat_id=record.chat_id,
            action=record.action.value,
            target_user_id=record.target_user_id,
            moderator_id=record.moderator_id,
            reason=record.reason,
            duration_minutes=record.duration_minutes,
            created_at=record.created_at,
        )
        try:
            async with self._sessions()() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.critical(
                f"AUDIT WRITE FAILED: {record.action.value} target={record.target_user_id} "
                f"chat={record.chat_id} by={record.moderator_id}: {e}"
            )
            return False
        logger.debug(f"Audit: {record.action.value} target={record.target_user_id} chat={record.chat_id}")
        return True

    async def recent(self, chat_id: int, limit: int = 10) -> List[ModerationActionRecord]:
        async with self._sessions()() as session:
            result = await session.execute(
                select(ModerationAction)
                .filter_by(chat_id=chat_id)
                .order_by(ModerationAction.created_at.desc(), ModerationAction.id.desc())
                .limit(limit)
            )
            return [_to_record(row) for row in result.scalars().all()]

    async def latest_bans(self) -> Dict[StateKey, bool]:
        """
        Latest ban/unban decision per (chat_id, user_id).

        Returns:
            Mapping of key -> True if the last action was a ban
        """
        async with self._sessions()() as session:
            result = await session.execute(
                select(ModerationAction)
                .where(ModerationAction.action.in_([ActionType.BAN.value, ActionType.UNBAN.value]))
                .where(ModerationAction.chat_id.is_not(None))
                .where(ModerationAction.target_user_id.is_not(None))
                .order_by(ModerationAction.created_at, ModerationAction.id)
            )
            latest: Dict[StateKey, bool] = {}
            for row in result.scalars().all():
                latest[(row.chat_id, row.target_user_id)] = row.action == ActionType.BAN.value
            return latest

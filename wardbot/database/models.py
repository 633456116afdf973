from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from wardbot.database.session import Base
from wardbot.utils import utc_now


class ModerationAction(Base):
    """Append-only audit row, one per moderation decision."""
    __tablename__ = "moderation_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True, nullable=True)
    action: Mapped[str] = mapped_column(String(16), index=True)  # ban, unban, mute, unmute, delete, allow, slowmode_set
    target_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True, nullable=True)  # NULL for chat-wide slowmode
    moderator_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # NULL for system actions
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)


class FilterKeyword(Base):
    """Keyword managed from the admin dashboard."""
    __tablename__ = "filter_keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(String(128), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

"""Data model of the moderation engine.

Per-user state, verification challenges, escalation items and the immutable
audit record. These are plain dataclasses with no Telegram dependencies so
the engine can be exercised without a bot.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from wardbot.utils import utc_now


StateKey = Tuple[int, int]  # (chat_id, user_id)


# ============================================================================
# Enums
# ============================================================================

class ActionType(str, Enum):
    """Kinds of moderation actions recorded in the audit log."""
    BAN = "ban"
    UNBAN = "unban"
    MUTE = "mute"
    UNMUTE = "unmute"
    DELETE = "delete"
    ALLOW = "allow"
    SLOWMODE_SET = "slowmode_set"


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"


class Resolution(str, Enum):
    PENDING = "pending"
    ALLOWED = "allowed"
    DELETED = "deleted"
    MUTED = "muted"


class ReviewDecision(str, Enum):
    """Moderator choices on a flagged message."""
    ALLOW = "allow"
    DELETE = "delete"
    MUTE = "mute"


DECISION_RESOLUTIONS = {
    ReviewDecision.ALLOW: Resolution.ALLOWED,
    ReviewDecision.DELETE: Resolution.DELETED,
    ReviewDecision.MUTE: Resolution.MUTED,
}

DECISION_ACTIONS = {
    ReviewDecision.ALLOW: ActionType.ALLOW,
    ReviewDecision.DELETE: ActionType.DELETE,
    ReviewDecision.MUTE: ActionType.MUTE,
}


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class UserModerationState:
    """
    Moderation state of one user in one chat.

    Attributes:
        chat_id: Telegram chat ID
        user_id: Telegram user ID
        banned: Indefinite suppression until an explicit unban
        mute_until: End of the current mute (expired values count as absent)
        slow_mode_delay_seconds: Minimum interval between accepted messages
        last_message_at: Timestamp of the last accepted message
    """
    chat_id: int
    user_id: int
    banned: bool = False
    mute_until: Optional[datetime] = None
    slow_mode_delay_seconds: int = 0
    last_message_at: Optional[datetime] = None

    def is_muted(self, now: datetime) -> bool:
        return self.mute_until is not None and now < self.mute_until

    def is_throttled(self, now: datetime) -> bool:
        if self.slow_mode_delay_seconds <= 0 or self.last_message_at is None:
            return False
        return now - self.last_message_at < timedelta(seconds=self.slow_mode_delay_seconds)

    def snapshot(self) -> "UserModerationState":
        """Detached copy safe to hand out of the store."""
        return replace(self)


@dataclass
class VerificationChallenge:
    chat_id: int
    user_id: int
    code: str
    issued_at: datetime
    deadline: datetime
    status: ChallengeStatus = ChallengeStatus.PENDING
    prompt_message_id: Optional[int] = None

    @property
    def key(self) -> StateKey:
        return (self.chat_id, self.user_id)

    def is_due(self, now: datetime) -> bool:
        return self.status == ChallengeStatus.PENDING and now >= self.deadline


@dataclass
class EscalationItem:
    """A flagged message waiting for a moderator decision."""
    id: str
    chat_id: int
    original_message_id: int
    author_user_id: int
    matched_keyword: str
    created_at: datetime
    resolution: Resolution = Resolution.PENDING
    forwarded_message_id: Optional[int] = None
    prompt_message_id: Optional[int] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.resolution == Resolution.PENDING


@dataclass(frozen=True)
class ModerationActionRecord:
    """Immutable audit entry produced by every enforcement or moderator decision."""
    action: ActionType
    target_user_id: Optional[int]
    chat_id: Optional[int] = None
    moderator_id: Optional[int] = None
    reason: Optional[str] = None
    duration_minutes: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_system(self) -> bool:
        return self.moderator_id is None

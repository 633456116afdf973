"""Message decision pipeline.

Stages run in a fixed order and stop at the first match:

    ban -> mute -> slow mode -> keyword filter -> allow

The whole evaluation, including the slow-mode timestamp update on an
allowed message, happens inside one state-store transaction with no await,
so two messages from the same user can never both slip past slow mode.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from wardbot.moderation.keywords import KeywordFilter
from wardbot.moderation.state_store import UserStateStore

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    BANNED = "banned"
    MUTED = "muted"
    SLOW_MODE = "slow_mode"
    KEYWORD = "keyword"
    ALLOWED = "allowed"


STAGE_REASONS = {
    Stage.BANNED: "Message from banned user",
    Stage.MUTED: "Message from muted user",
    Stage.SLOW_MODE: "Slow mode",
}


@dataclass(frozen=True)
class InboundMessage:
    chat_id: int
    user_id: int
    message_id: int
    text: str
    sent_at: datetime
    author_name: str = "Unknown User"


@dataclass(frozen=True)
class Verdict:
    stage: Stage
    keyword: Optional[str] = None

    @property
    def deletes(self) -> bool:
        return self.stage != Stage.ALLOWED

    @property
    def reason(self) -> str:
        if self.stage == Stage.KEYWORD:
            return f"Keyword violation: {self.keyword}"
        return STAGE_REASONS.get(self.stage, "")


class MessagePipeline:
    def __init__(self, store: UserStateStore, keyword_filter: KeywordFilter):
        self.store = store
        self.keyword_filter = keyword_filter

    def evaluate(self, chat_id: int, user_id: int, text: Optional[str], now: datetime) -> Verdict:
        """Decide what happens to one message. Synchronous and atomic per user."""
        with self.store.transaction(chat_id, user_id) as state:
            if state.banned:
                return Verdict(Stage.BANNED)
            if state.is_muted(now):
                return Verdict(Stage.MUTED)
            if state.is_throttled(now):
                return Verdict(Stage.SLOW_MODE)
            keyword = self.keyword_filter.match(text)
            if keyword is not None:
                return Verdict(Stage.KEYWORD, keyword=keyword)
            state.last_message_at = now
            return Verdict(Stage.ALLOWED)

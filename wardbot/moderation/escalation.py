"""Escalation dispatcher.

Flagged messages become PENDING items, are forwarded to the moderator
review chat with Allow / Delete / Mute 1h buttons, and are resolved exactly
once. The resolution is committed before any platform call is awaited, so
two moderators pressing buttons at once cannot both resolve the item.
"""

import html
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from wardbot.moderation.callbacks import review_keyboard
from wardbot.moderation.models import (
    DECISION_ACTIONS,
    DECISION_RESOLUTIONS,
    EscalationItem,
    ModerationActionRecord,
    Resolution,
    ReviewDecision,
)
from wardbot.moderation.state_store import UserStateStore

logger = logging.getLogger(__name__)

RESOLUTION_LABELS = {
    Resolution.ALLOWED: "✅ Allowed",
    Resolution.DELETED: "🚫 Deleted",
    Resolution.MUTED: "⏸️ Author muted",
}


class ResolveOutcome(str, Enum):
    RESOLVED = "resolved"
    ALREADY_RESOLVED = "already_resolved"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ResolveResult:
    outcome: ResolveOutcome
    item: Optional[EscalationItem] = None


class EscalationDispatcher:
    def __init__(
        self,
        store: UserStateStore,
        audit,
        platform,
        review_chat_id: Optional[int],
        mute_duration: timedelta = timedelta(hours=1),
    ):
        self.store = store
        self.audit = audit
        self.platform = platform
        self.review_chat_id = review_chat_id
        self.mute_duration = mute_duration
        self._items: Dict[str, EscalationItem] = {}
        self._by_message: Dict[int, str] = {}

    def open(
        self,
        chat_id: int,
        message_id: int,
        author_user_id: int,
        keyword: str,
        now: datetime,
    ) -> EscalationItem:
        """Create a PENDING item for a flagged message."""
        item = EscalationItem(
            id=uuid.uuid4().hex,
            chat_id=chat_id,
            original_message_id=message_id,
            author_user_id=author_user_id,
            matched_keyword=keyword,
            created_at=now,
        )
        self._items[item.id] = item
        logger.info(f"Escalation {item.id}: user {author_user_id} in chat {chat_id}, keyword '{keyword}'")
        return item

    async def publish(self, item: EscalationItem, author_name: str) -> bool:
        """
        Forward the flagged message to the review chat and post the decision prompt.

        Must run before the original message is deleted, otherwise there is
        nothing left to forward.
        """
        if self.review_chat_id is None:
            logger.warning(f"Escalation {item.id} has no review chat configured")
            return False

        forwarded_id = await self.platform.forward_message(
            self.review_chat_id, item.chat_id, item.original_message_id
        )
        if forwarded_id is not None:
            item.forwarded_message_id = forwarded_id
            self._by_message[forwarded_id] = item.id

        text = (
            f"🚨 Flagged message from {html.escape(author_name)} (ID: {item.author_user_id})\n\n"
            f"Keyword: <b>{html.escape(item.matched_keyword)}</b>"
        )
        prompt_id = await self.platform.send_message(
            self.review_chat_id, text, reply_markup=review_keyboard(item.id)
        )
        if prompt_id is not None:
            item.prompt_message_id = prompt_id
            self._by_message[prompt_id] = item.id
        return prompt_id is not None

    def get(self, item_id: str) -> Optional[EscalationItem]:
        return self._items.get(item_id)

    def find_by_message(self, message_id: int) -> Optional[EscalationItem]:
        """Locate an item by its forwarded copy or prompt message id."""
        item_id = self._by_message.get(message_id)
        return self._items.get(item_id) if item_id else None

    def pending(self) -> List[EscalationItem]:
        return [item for item in self._items.values() if item.is_pending]

    async def resolve(
        self,
        item_id: str,
        decision: ReviewDecision,
        moderator_id: int,
        now: datetime,
    ) -> ResolveResult:
        """
        Apply a moderator decision to a PENDING item.

        Resolving an unknown or already resolved item changes nothing and
        writes no audit record.
        """
        item = self._items.get(item_id)
        if item is None:
            return ResolveResult(ResolveOutcome.NOT_FOUND)
        if not item.is_pending:
            logger.info(f"Escalation {item_id} already {item.resolution.value}, ignoring {decision.value}")
            return ResolveResult(ResolveOutcome.ALREADY_RESOLVED, item)

        item.resolution = DECISION_RESOLUTIONS[decision]
        item.resolved_by = moderator_id
        item.resolved_at = now

        duration_minutes = None
        mute_until = None
        if decision == ReviewDecision.MUTE:
            mute_until = now + self.mute_duration
            self.store.apply_mute(item.chat_id, item.author_user_id, mute_until, now)
            duration_minutes = int(self.mute_duration.total_seconds() // 60)

        logger.info(f"Escalation {item_id} resolved as {item.resolution.value} by {moderator_id}")

        if mute_until is not None:
            await self.platform.restrict_member(item.chat_id, item.author_user_id, can_send=False, until=mute_until)
        # The forwarded copy stays in the review chat as evidence
        if decision == ReviewDecision.DELETE and item.prompt_message_id is not None:
            await self.platform.delete_message(self.review_chat_id, item.prompt_message_id)
        elif item.prompt_message_id is not None:
            await self.platform.edit_text(
                self.review_chat_id,
                item.prompt_message_id,
                f"{RESOLUTION_LABELS[item.resolution]}: user {item.author_user_id}, "
                f"keyword <b>{html.escape(item.matched_keyword)}</b>",
            )

        await self.audit.record(ModerationActionRecord(
            action=DECISION_ACTIONS[decision],
            target_user_id=item.author_user_id,
            chat_id=item.chat_id,
            moderator_id=moderator_id,
            reason=f"Keyword violation: {item.matched_keyword}",
            duration_minutes=duration_minutes,
            created_at=now,
        ))
        return ResolveResult(ResolveOutcome.RESOLVED, item)

    def prune(self, before: datetime) -> int:
        """
        Forget items that can no longer be acted on.

        Drops resolved items settled before ``before``, pending items
        created before ``before``, and pending items whose review prompt was
        never posted, since no button can ever resolve those.
        """
        stale = [item for item in self._items.values() if self._is_stale(item, before)]
        for item in stale:
            del self._items[item.id]
            for message_id in (item.forwarded_message_id, item.prompt_message_id):
                if message_id is not None:
                    self._by_message.pop(message_id, None)
        return len(stale)

    @staticmethod
    def _is_stale(item: EscalationItem, before: datetime) -> bool:
        if not item.is_pending:
            return item.resolved_at is not None and item.resolved_at < before
        return item.prompt_message_id is None or item.created_at < before

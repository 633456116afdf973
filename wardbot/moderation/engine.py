"""Moderation engine facade.

Wires the state store, verification gate, message pipeline, escalation
dispatcher, audit sink and chat platform together. Every entry point makes
its decision synchronously first, then awaits platform calls and the audit
write. A failed platform call is logged by the adapter and never undoes the
decision; a failed audit write is logged by the sink and never undoes it
either.
"""

import html
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from wardbot.moderation.callbacks import challenge_keyboard
from wardbot.moderation.escalation import EscalationDispatcher, ResolveResult
from wardbot.moderation.keywords import KeywordFilter
from wardbot.moderation.models import (
    ActionType,
    ModerationActionRecord,
    ReviewDecision,
    UserModerationState,
    VerificationChallenge,
)
from wardbot.moderation.pipeline import InboundMessage, MessagePipeline, Stage, Verdict
from wardbot.moderation.state_store import UserStateStore
from wardbot.moderation.verification import VerificationGate, VerificationOutcome

logger = logging.getLogger(__name__)


class ModerationEngine:
    def __init__(
        self,
        platform,
        audit,
        keywords=(),
        review_chat_id: Optional[int] = None,
        default_slow_mode_seconds: int = 0,
        keyword_mute: timedelta = timedelta(hours=1),
        verification_timeout: timedelta = timedelta(minutes=5),
        verification_decoys: int = 2,
    ):
        self.platform = platform
        self.audit = audit
        self.store = UserStateStore(default_slow_mode_seconds)
        self.keyword_filter = KeywordFilter(keywords)
        self.pipeline = MessagePipeline(self.store, self.keyword_filter)
        self.gate = VerificationGate(verification_timeout)
        self.escalations = EscalationDispatcher(
            self.store, audit, platform, review_chat_id, mute_duration=keyword_mute
        )
        self.verification_decoys = verification_decoys

    @classmethod
    def from_settings(cls, platform, audit, settings) -> "ModerationEngine":
        return cls(
            platform,
            audit,
            keywords=settings.keywords,
            review_chat_id=settings.review_chat_id,
            default_slow_mode_seconds=settings.default_slow_mode_seconds,
            keyword_mute=timedelta(minutes=settings.keyword_mute_minutes),
            verification_timeout=timedelta(minutes=settings.verification_timeout_minutes),
            verification_decoys=settings.verification_decoys,
        )

    async def _record(self, action: ActionType, chat_id: int, target_user_id: Optional[int],
                      moderator_id: Optional[int], reason: Optional[str], now: datetime,
                      duration_minutes: Optional[int] = None) -> bool:
        return await self.audit.record(ModerationActionRecord(
            action=action,
            target_user_id=target_user_id,
            chat_id=chat_id,
            moderator_id=moderator_id,
            reason=reason,
            duration_minutes=duration_minutes,
            created_at=now,
        ))

    # ------------------------------------------------------------------
    # Message pipeline
    # ------------------------------------------------------------------

    async def handle_message(self, message: InboundMessage) -> Verdict:
        """
        Run one inbound message through the pipeline and carry out the verdict.

        Returns:
            The verdict; ``verdict.deletes`` tells the caller to stop processing
        """
        verdict = self.pipeline.evaluate(message.chat_id, message.user_id, message.text, message.sent_at)
        if not verdict.deletes:
            return verdict

        item = None
        if verdict.stage == Stage.KEYWORD:
            item = self.escalations.open(
                message.chat_id, message.message_id, message.user_id, verdict.keyword, message.sent_at
            )
        logger.info(
            f"Deleting message {message.message_id} from user {message.user_id} "
            f"in chat {message.chat_id}: {verdict.stage.value}"
        )

        # Forward before deleting: a deleted message cannot be forwarded
        if item is not None:
            await self.escalations.publish(item, message.author_name)
        await self.platform.delete_message(message.chat_id, message.message_id)
        await self._record(
            ActionType.DELETE, message.chat_id, message.user_id, None, verdict.reason, message.sent_at
        )
        return verdict

    # ------------------------------------------------------------------
    # Admin enforcement
    # ------------------------------------------------------------------

    async def ban(self, chat_id: int, user_id: int, moderator_id: Optional[int],
                  reason: Optional[str], now: datetime) -> UserModerationState:
        state = self.store.apply_ban(chat_id, user_id)
        logger.info(f"Ban: user {user_id} in chat {chat_id} by {moderator_id}, reason: {reason}")
        await self.platform.ban_member(chat_id, user_id)
        await self._record(ActionType.BAN, chat_id, user_id, moderator_id, reason, now)
        return state

    async def unban(self, chat_id: int, user_id: int, moderator_id: Optional[int],
                    reason: Optional[str], now: datetime) -> UserModerationState:
        state = self.store.apply_unban(chat_id, user_id)
        logger.info(f"Unban: user {user_id} in chat {chat_id} by {moderator_id}")
        await self.platform.unban_member(chat_id, user_id)
        await self._record(ActionType.UNBAN, chat_id, user_id, moderator_id, reason, now)
        return state

    async def mute(self, chat_id: int, user_id: int, moderator_id: Optional[int], minutes: int,
                   reason: Optional[str], now: datetime) -> UserModerationState:
        until = now + timedelta(minutes=minutes)
        state = self.store.apply_mute(chat_id, user_id, until, now)
        logger.info(f"Mute: user {user_id} in chat {chat_id} for {minutes}m by {moderator_id}")
        await self.platform.restrict_member(chat_id, user_id, can_send=False, until=until)
        await self._record(ActionType.MUTE, chat_id, user_id, moderator_id, reason, now, duration_minutes=minutes)
        return state

    async def unmute(self, chat_id: int, user_id: int, moderator_id: Optional[int],
                     reason: Optional[str], now: datetime) -> UserModerationState:
        state = self.store.apply_unmute(chat_id, user_id)
        logger.info(f"Unmute: user {user_id} in chat {chat_id} by {moderator_id}")
        await self.platform.restrict_member(chat_id, user_id, can_send=True)
        await self._record(ActionType.UNMUTE, chat_id, user_id, moderator_id, reason, now)
        return state

    async def set_slow_mode(self, chat_id: int, seconds: int, moderator_id: Optional[int],
                            now: datetime, user_id: Optional[int] = None) -> None:
        """Set slow mode for one user, or for the whole chat when ``user_id`` is None."""
        if user_id is None:
            self.store.set_chat_slow_mode(chat_id, seconds)
        else:
            self.store.set_slow_mode(chat_id, user_id, seconds)
        reason = f"Slow mode {seconds}s" if seconds else "Slow mode disabled"
        await self._record(ActionType.SLOWMODE_SET, chat_id, user_id, moderator_id, reason, now)

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    async def resolve_escalation(self, item_id: str, decision: ReviewDecision,
                                 moderator_id: int, now: datetime) -> ResolveResult:
        return await self.escalations.resolve(item_id, decision, moderator_id, now)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def member_joined(self, chat_id: int, user_id: int, name: str, now: datetime) -> VerificationChallenge:
        """Restrict a new member and present a verification challenge."""
        challenge = self.gate.issue(chat_id, user_id, now)
        decoys = self.gate.decoys(challenge, self.verification_decoys)
        minutes = int(self.gate.timeout.total_seconds() // 60)

        await self.platform.restrict_member(chat_id, user_id, can_send=False)
        text = (
            f"👋 Welcome {html.escape(name)}!\n\n"
            f"To prevent spam, press the button with the code <b>{challenge.code}</b> "
            f"within {minutes} minutes.\n\n"
            f"⚠️ You cannot send messages until verified."
        )
        prompt_id = await self.platform.send_message(
            chat_id, text, reply_markup=challenge_keyboard(user_id, challenge.code, decoys)
        )
        # The challenge may have been replaced or settled while we awaited
        if self.gate.get(chat_id, user_id) is challenge:
            challenge.prompt_message_id = prompt_id
        logger.info(f"New member {user_id} in chat {chat_id}, verification due {challenge.deadline.isoformat()}")
        return challenge

    async def member_left(self, chat_id: int, user_id: int) -> Optional[VerificationChallenge]:
        challenge = self.gate.cancel(chat_id, user_id)
        if challenge is None:
            return None
        logger.info(f"User {user_id} left chat {chat_id} before verifying, challenge dropped")
        if challenge.prompt_message_id is not None:
            await self.platform.delete_message(chat_id, challenge.prompt_message_id)
        return challenge

    async def submit_challenge(self, chat_id: int, user_id: int, submitting_user_id: int,
                               code: str, now: datetime) -> Tuple[VerificationOutcome, Optional[VerificationChallenge]]:
        outcome, challenge = self.gate.submit(chat_id, user_id, submitting_user_id, code, now)
        if outcome == VerificationOutcome.VERIFIED:
            await self.platform.restrict_member(chat_id, user_id, can_send=True)
            if challenge.prompt_message_id is not None:
                await self.platform.edit_text(
                    chat_id, challenge.prompt_message_id,
                    "✅ Verification successful! Welcome to the group! You can now send messages.",
                )
        return outcome, challenge

    async def sweep_verifications(self, now: datetime) -> List[VerificationChallenge]:
        """
        Expire overdue challenges and remove their users.

        One removal attempt per challenge. If it fails the user stays
        restricted; the attempt is not repeated.
        """
        expired = self.gate.expire_due(now)
        for challenge in expired:
            removed = await self.platform.remove_member(challenge.chat_id, challenge.user_id)
            if removed:
                logger.info(f"Removed unverified user {challenge.user_id} from chat {challenge.chat_id}")
            else:
                logger.error(
                    f"Could not remove unverified user {challenge.user_id} from chat "
                    f"{challenge.chat_id}; user stays restricted"
                )
            if challenge.prompt_message_id is not None:
                await self.platform.delete_message(challenge.chat_id, challenge.prompt_message_id)
        return expired

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def restore_bans(self) -> int:
        """
        Re-apply bans whose latest audit entry is a ban.

        Mutes, slow-mode timers and pending challenges are not restored.

        Returns:
            Number of users marked banned
        """
        latest = await self.audit.latest_bans()
        restored = 0
        for (chat_id, user_id), banned in latest.items():
            if banned:
                self.store.apply_ban(chat_id, user_id)
                restored += 1
        logger.info(f"Restored {restored} bans from audit log")
        return restored

"""Join verification: new members must press their code within the time limit."""

import logging
from aiogram import Router
from aiogram.filters import ChatMemberUpdatedFilter, JOIN_TRANSITION, LEAVE_TRANSITION
from aiogram.types import CallbackQuery, ChatMemberUpdated

from wardbot.moderation.callbacks import VerifyCallback
from wardbot.moderation.engine import ModerationEngine
from wardbot.moderation.verification import VerificationOutcome
from wardbot.utils import utc_now

logger = logging.getLogger(__name__)

router = Router()

OUTCOME_ANSWERS = {
    VerificationOutcome.VERIFIED: ("✅ Verified successfully!", False),
    VerificationOutcome.WRONG_USER: ("❌ This verification is not for you!", True),
    VerificationOutcome.MISMATCH: ("❌ Wrong code, try again.", True),
    VerificationOutcome.EXPIRED: ("⌛ Verification time is over.", True),
    VerificationOutcome.NOT_FOUND: ("Verification was already processed.", True),
}


@router.chat_member(ChatMemberUpdatedFilter(JOIN_TRANSITION))
async def on_member_joined(event: ChatMemberUpdated, engine: ModerationEngine):
    user = event.new_chat_member.user
    if user.is_bot:
        return
    await engine.member_joined(event.chat.id, user.id, user.full_name, utc_now())


@router.chat_member(ChatMemberUpdatedFilter(LEAVE_TRANSITION))
async def on_member_left(event: ChatMemberUpdated, engine: ModerationEngine):
    await engine.member_left(event.chat.id, event.new_chat_member.user.id)


@router.callback_query(VerifyCallback.filter())
async def on_verify_pressed(callback: CallbackQuery, callback_data: VerifyCallback, engine: ModerationEngine):
    if callback.message is None:
        await callback.answer()
        return

    outcome, _ = await engine.submit_challenge(
        chat_id=callback.message.chat.id,
        user_id=callback_data.user_id,
        submitting_user_id=callback.from_user.id,
        code=callback_data.code,
        now=utc_now(),
    )
    text, alert = OUTCOME_ANSWERS[outcome]
    if outcome == VerificationOutcome.WRONG_USER:
        logger.info(f"User {callback.from_user.id} pressed challenge of user {callback_data.user_id}")
    await callback.answer(text, show_alert=alert)

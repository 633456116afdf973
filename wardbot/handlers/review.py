"""Moderator decisions on flagged messages in the review chat."""

import logging
from aiogram import Router
from aiogram.types import CallbackQuery

from wardbot.moderation.callbacks import ReviewCallback
from wardbot.moderation.engine import ModerationEngine
from wardbot.moderation.escalation import ResolveOutcome
from wardbot.moderation.models import ReviewDecision
from wardbot.utils import utc_now

logger = logging.getLogger(__name__)

router = Router()

DECISION_ANSWERS = {
    ReviewDecision.ALLOW: "Message allowed",
    ReviewDecision.DELETE: "Message deleted",
    ReviewDecision.MUTE: "User muted for 1 hour",
}


@router.callback_query(ReviewCallback.filter())
async def on_review_decision(callback: CallbackQuery, callback_data: ReviewCallback, engine: ModerationEngine):
    review_chat_id = engine.escalations.review_chat_id
    if callback.message is None or callback.message.chat.id != review_chat_id:
        logger.warning(f"Review button pressed outside the review chat by {callback.from_user.id}")
        await callback.answer("❌ Not allowed here.", show_alert=True)
        return

    result = await engine.resolve_escalation(
        callback_data.item_id, callback_data.action, callback.from_user.id, utc_now()
    )
    if result.outcome == ResolveOutcome.RESOLVED:
        await callback.answer(DECISION_ANSWERS[callback_data.action])
    elif result.outcome == ResolveOutcome.ALREADY_RESOLVED:
        await callback.answer(
            f"Already resolved: {result.item.resolution.value} by {result.item.resolved_by}",
            show_alert=True,
        )
    else:
        await callback.answer("This review item is no longer tracked.", show_alert=True)

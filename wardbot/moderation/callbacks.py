"""Typed inline-button payloads and the keyboards that carry them.

Button presses are parsed by aiogram's ``CallbackData`` factories, so a
malformed payload never reaches a resolver.
"""

import random
from typing import List

from aiogram.filters.callback_data import CallbackData
from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from wardbot.moderation.models import ReviewDecision


class ReviewCallback(CallbackData, prefix="review"):
    """Moderator decision on an escalation item."""
    action: ReviewDecision
    item_id: str


class VerifyCallback(CallbackData, prefix="verify"):
    """Code submission for the challenge issued to ``user_id``."""
    user_id: int
    code: str


REVIEW_BUTTONS = (
    (ReviewDecision.ALLOW, "✅ Allow"),
    (ReviewDecision.DELETE, "🚫 Delete"),
    (ReviewDecision.MUTE, "⏸️ Mute 1h"),
)


def review_keyboard(item_id: str) -> InlineKeyboardMarkup:
    keyboard = InlineKeyboardBuilder()
    for action, label in REVIEW_BUTTONS:
        keyboard.button(text=label, callback_data=ReviewCallback(action=action, item_id=item_id))
    keyboard.adjust(3)
    return keyboard.as_markup()


def challenge_keyboard(user_id: int, code: str, decoys: List[str]) -> InlineKeyboardMarkup:
    """The real code shuffled in among decoys, one button each."""
    codes = [code, *decoys]
    random.shuffle(codes)
    keyboard = InlineKeyboardBuilder()
    for option in codes:
        keyboard.button(text=option, callback_data=VerifyCallback(user_id=user_id, code=option))
    keyboard.adjust(len(codes))
    return keyboard.as_markup()

"""Admin moderation commands: /ban, /unban, /mute, /unmute, /slowmode, /modlog, /rules."""

import html
import logging
from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from wardbot.config import settings
from wardbot.moderation.audit import SqlAuditSink
from wardbot.moderation.commands import (
    CommandArgumentError,
    parse_mute,
    parse_slow_mode,
    parse_target,
)
from wardbot.moderation.engine import ModerationEngine
from wardbot.services.admins import AdminDirectory
from wardbot.utils import utc_now

logger = logging.getLogger(__name__)

router = Router()
router.message.filter(F.chat.type.in_({"group", "supergroup"}))

RULES_TEXT = (
    "📜 <b>Group Rules</b>\n\n"
    "1. Respect all members\n"
    "2. Keep discussions civil and on-topic\n"
    "3. No spam or promotional content\n"
    "4. Report issues to admins\n"
    "5. Follow community guidelines\n\n"
    "<i>Violations may result in warnings, muting, or banning.</i>"
)

DENIED_TEXT = "❌ Only admins can use this command."


def _reply_user_id(msg: Message) -> int | None:
    reply = msg.reply_to_message
    if reply and reply.from_user and not reply.from_user.is_bot:
        return reply.from_user.id
    return None


async def _authorized(msg: Message, admins: AdminDirectory) -> bool:
    if msg.from_user is None:
        return False
    if await admins.is_admin(msg.chat.id, msg.from_user.id):
        return True
    await msg.reply(DENIED_TEXT)
    logger.info(f"Denied {msg.text!r} from non-admin {msg.from_user.id} in chat {msg.chat.id}")
    return False


@router.message(Command("rules"))
async def cmd_rules(msg: Message):
    await msg.reply(RULES_TEXT)


@router.message(Command("ban"))
async def cmd_ban(msg: Message, command: CommandObject, engine: ModerationEngine, admins: AdminDirectory):
    """/ban (reply) [reason] or /ban <user_id> [reason]"""
    if not await _authorized(msg, admins):
        return
    try:
        target_id, reason = parse_target(command.args, _reply_user_id(msg), "ban")
    except CommandArgumentError as e:
        await msg.reply(f"❌ {e}")
        return

    await engine.ban(msg.chat.id, target_id, msg.from_user.id, reason or "Admin ban command", utc_now())
    await msg.reply(f"🚫 User {target_id} banned.")


@router.message(Command("unban"))
async def cmd_unban(msg: Message, command: CommandObject, engine: ModerationEngine, admins: AdminDirectory):
    if not await _authorized(msg, admins):
        return
    try:
        target_id, reason = parse_target(command.args, _reply_user_id(msg), "unban")
    except CommandArgumentError as e:
        await msg.reply(f"❌ {e}")
        return

    await engine.unban(msg.chat.id, target_id, msg.from_user.id, reason or "Admin unban command", utc_now())
    await msg.reply(f"✅ User {target_id} unbanned.")


@router.message(Command("mute"))
async def cmd_mute(msg: Message, command: CommandObject, engine: ModerationEngine, admins: AdminDirectory):
    """/mute [minutes] [reason], as a reply to the user's message."""
    if not await _authorized(msg, admins):
        return
    target_id = _reply_user_id(msg)
    if target_id is None:
        await msg.reply("❌ Reply to a message from the user you want to mute.")
        return
    try:
        minutes, reason = parse_mute(command.args, settings.default_mute_minutes, settings.max_mute_minutes)
    except CommandArgumentError as e:
        await msg.reply(f"❌ {e}")
        return

    await engine.mute(msg.chat.id, target_id, msg.from_user.id, minutes, reason or "Admin mute command", utc_now())
    await msg.reply(f"🔇 User muted for {minutes} minutes.")


@router.message(Command("unmute"))
async def cmd_unmute(msg: Message, command: CommandObject, engine: ModerationEngine, admins: AdminDirectory):
    if not await _authorized(msg, admins):
        return
    try:
        target_id, reason = parse_target(command.args, _reply_user_id(msg), "unmute")
    except CommandArgumentError as e:
        await msg.reply(f"❌ {e}")
        return

    await engine.unmute(msg.chat.id, target_id, msg.from_user.id, reason or "Admin unmute command", utc_now())
    await msg.reply(f"🔊 User {target_id} unmuted.")


@router.message(Command("slowmode"))
async def cmd_slowmode(msg: Message, command: CommandObject, engine: ModerationEngine, admins: AdminDirectory):
    """/slowmode <seconds>; as a reply it applies to that user only."""
    if not await _authorized(msg, admins):
        return
    try:
        seconds = parse_slow_mode(command.args, settings.max_slow_mode_seconds)
    except CommandArgumentError as e:
        await msg.reply(f"❌ {e}")
        return

    target_id = _reply_user_id(msg)
    await engine.set_slow_mode(msg.chat.id, seconds, msg.from_user.id, utc_now(), user_id=target_id)
    scope = f"user {target_id}" if target_id else "this chat"
    if seconds == 0:
        await msg.reply(f"✅ Slowmode disabled for {scope}.")
    else:
        await msg.reply(f"✅ Slowmode set to {seconds} seconds per message for {scope}.")


@router.message(Command("modlog"))
async def cmd_modlog(msg: Message, admins: AdminDirectory, audit: SqlAuditSink):
    if not await _authorized(msg, admins):
        return
    records = await audit.recent(msg.chat.id, limit=10)
    if not records:
        await msg.reply("No moderation actions recorded yet.")
        return

    lines = ["⚖️ <b>Recent moderation actions</b>\n"]
    for record in records:
        who = f"by {record.moderator_id}" if record.moderator_id else "system"
        target = record.target_user_id if record.target_user_id is not None else "chat"
        duration = f" {record.duration_minutes}m" if record.duration_minutes else ""
        lines.append(
            f"{record.created_at:%d.%m %H:%M} {record.action.value}{duration} → {target} ({who})"
            + (f": {html.escape(record.reason)}" if record.reason else "")
        )
    await msg.reply("\n".join(lines))

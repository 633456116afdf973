"""Argument parsing for admin moderation commands.

Parsers are pure: they either return validated values or raise
``CommandArgumentError`` with a message fit to show the admin. Nothing is
mutated until parsing has succeeded.
"""

from typing import Optional, Tuple

MAX_SLOW_MODE_SECONDS = 3600


class CommandArgumentError(ValueError):
    """Malformed or out-of-range command arguments."""


def _split(args: Optional[str]) -> list:
    return args.split() if args else []


def parse_slow_mode(args: Optional[str], maximum: int = MAX_SLOW_MODE_SECONDS) -> int:
    """
    Parse ``/slowmode <seconds>``.

    Args:
        args: Text after the command
        maximum: Upper bound in seconds (inclusive)

    Returns:
        Delay in seconds, 0 disables slow mode

    Raises:
        CommandArgumentError: If the value is missing, not an integer or out of range
    """
    usage = f"Use /slowmode <seconds> (0-{maximum}). Set to 0 to disable."
    parts = _split(args)
    if not parts:
        raise CommandArgumentError(usage)
    try:
        seconds = int(parts[0])
    except ValueError:
        raise CommandArgumentError(f"Invalid duration. {usage}") from None
    if seconds < 0 or seconds > maximum:
        raise CommandArgumentError(f"Invalid duration. {usage}")
    return seconds


def parse_mute(args: Optional[str], default_minutes: int, maximum_minutes: int) -> Tuple[int, Optional[str]]:
    """
    Parse ``/mute [minutes] [reason]``.

    The first token is taken as the duration only if it is numeric;
    otherwise the whole text is the reason.
    """
    parts = _split(args)
    minutes = default_minutes
    if parts and parts[0].lstrip("-").isdigit():
        minutes = int(parts.pop(0))
        if minutes < 1 or minutes > maximum_minutes:
            raise CommandArgumentError(f"Invalid duration. Use /mute [minutes] (1-{maximum_minutes}).")
    reason = " ".join(parts) or None
    return minutes, reason


def parse_target(args: Optional[str], reply_user_id: Optional[int], command: str) -> Tuple[int, Optional[str]]:
    """
    Resolve the target of ``/ban``, ``/unban`` and ``/unmute``.

    A reply wins; otherwise the first argument must be a numeric user id.

    Returns:
        (user_id, reason)
    """
    parts = _split(args)
    if reply_user_id is not None:
        return reply_user_id, " ".join(parts) or None
    if not parts:
        raise CommandArgumentError(f"Reply to the user's message or provide a user ID: /{command} <user_id>.")
    try:
        user_id = int(parts[0])
    except ValueError:
        raise CommandArgumentError(f"'{parts[0]}' is not a user ID.") from None
    if user_id <= 0:
        raise CommandArgumentError(f"'{parts[0]}' is not a user ID.")
    return user_id, " ".join(parts[1:]) or None

"""Utility functions for the bot."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time (timezone-aware).

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def display_name(user) -> str:
    """Best human-readable name for a Telegram user."""
    if user is None:
        return "Unknown User"
    if getattr(user, "username", None):
        return f"@{user.username}"
    return getattr(user, "full_name", None) or getattr(user, "first_name", None) or "Unknown User"

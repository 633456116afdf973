"""Administrator identity source.

Admin-only commands are authorized against the chat's administrator list,
fetched from Telegram and cached per chat for ``ttl`` seconds. If the list
cannot be fetched, nobody is treated as an admin.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional, Set

from wardbot.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class CachedAdmins:
    user_ids: Set[int]
    cached_at: datetime = field(default_factory=utc_now)

    def is_valid(self, ttl: timedelta, now: datetime) -> bool:
        return now - self.cached_at < ttl


class AdminDirectory:
    def __init__(self, platform, ttl_seconds: int = 60):
        self.platform = platform
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: Dict[int, CachedAdmins] = {}

    async def is_admin(self, chat_id: int, user_id: int, now: Optional[datetime] = None) -> bool:
        """
        Check whether a user administers a chat.

        Args:
            chat_id: Telegram chat ID
            user_id: Telegram user ID
            now: Reference time for cache expiry (defaults to current UTC)

        Returns:
            True if the user is in the chat's administrator list
        """
        now = now or utc_now()
        cached = self._cache.get(chat_id)
        if cached is None or not cached.is_valid(self.ttl, now):
            user_ids = await self.platform.get_administrator_ids(chat_id)
            if user_ids is None:
                logger.warning(f"Administrator list for chat {chat_id} unavailable, denying")
                return False
            cached = self._cache[chat_id] = CachedAdmins(user_ids, cached_at=now)
        return user_id in cached.user_ids

    def invalidate(self, chat_id: int) -> None:
        self._cache.pop(chat_id, None)

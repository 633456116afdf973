"""Per-user moderation state, scoped per chat.

The store is the only mutable structure shared between concurrent handlers.
Every mutation runs under a lock owned by its (chat_id, user_id) key, so a
mute and a slow-mode timestamp update for the same user cannot interleave,
while unrelated keys never contend.

Transaction bodies never await, so on the event loop each one runs to
completion without yielding and the per-key ``threading.Lock`` is never
contended there. The lock only matters for callers on other threads. The
store API stays synchronous; a transaction body that awaits would break
the atomicity above.

State lives for the lifetime of the worker; the audit log is the durable
record (see ``ModerationEngine.restore_bans``).
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List

from wardbot.moderation.models import StateKey, UserModerationState

logger = logging.getLogger(__name__)


class UserStateStore:
    """In-memory map of (chat_id, user_id) -> UserModerationState."""

    def __init__(self, default_slow_mode_seconds: int = 0):
        self.default_slow_mode_seconds = default_slow_mode_seconds
        self._states: Dict[StateKey, UserModerationState] = {}
        self._chat_slow_mode: Dict[int, int] = {}
        self._locks: Dict[StateKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: StateKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _new_state(self, chat_id: int, user_id: int) -> UserModerationState:
        return UserModerationState(
            chat_id=chat_id,
            user_id=user_id,
            slow_mode_delay_seconds=self.chat_slow_mode(chat_id),
        )

    def chat_slow_mode(self, chat_id: int) -> int:
        return self._chat_slow_mode.get(chat_id, self.default_slow_mode_seconds)

    def get(self, chat_id: int, user_id: int) -> UserModerationState:
        """Return a copy of the user's state, or a default state if none exists."""
        key = (chat_id, user_id)
        with self._lock_for(key):
            state = self._states.get(key)
            if state is None:
                return self._new_state(chat_id, user_id)
            return state.snapshot()

    @contextmanager
    def transaction(self, chat_id: int, user_id: int) -> Iterator[UserModerationState]:
        """
        Hold the key's lock and yield the live state, creating it if needed.

        The body must not await: it runs as one atomic read-modify-write.
        """
        key = (chat_id, user_id)
        with self._lock_for(key):
            state = self._states.get(key)
            if state is None:
                state = self._states[key] = self._new_state(chat_id, user_id)
            yield state

    # ------------------------------------------------------------------
    # Enforcement mutations
    # ------------------------------------------------------------------

    def apply_ban(self, chat_id: int, user_id: int) -> UserModerationState:
        with self.transaction(chat_id, user_id) as state:
            state.banned = True
            return state.snapshot()

    def apply_unban(self, chat_id: int, user_id: int) -> UserModerationState:
        with self.transaction(chat_id, user_id) as state:
            state.banned = False
            return state.snapshot()

    def apply_mute(self, chat_id: int, user_id: int, until: datetime, now: datetime) -> UserModerationState:
        """
        Mute a user until ``until``.

        Raises:
            ValueError: If ``until`` is not strictly after ``now``.
        """
        if until <= now:
            raise ValueError(f"mute end {until.isoformat()} is not in the future")
        with self.transaction(chat_id, user_id) as state:
            state.mute_until = until
            return state.snapshot()

    def apply_unmute(self, chat_id: int, user_id: int) -> UserModerationState:
        with self.transaction(chat_id, user_id) as state:
            state.mute_until = None
            return state.snapshot()

    def set_slow_mode(self, chat_id: int, user_id: int, seconds: int) -> UserModerationState:
        if seconds < 0:
            raise ValueError("slow mode delay must be non-negative")
        with self.transaction(chat_id, user_id) as state:
            state.slow_mode_delay_seconds = seconds
            return state.snapshot()

    def set_chat_slow_mode(self, chat_id: int, seconds: int) -> int:
        """
        Set the chat-wide delay for known and future users of a chat.

        Returns:
            Number of existing user states updated
        """
        if seconds < 0:
            raise ValueError("slow mode delay must be non-negative")
        self._chat_slow_mode[chat_id] = seconds
        updated = 0
        for key in self.keys_for_chat(chat_id):
            with self.transaction(*key) as state:
                state.slow_mode_delay_seconds = seconds
                updated += 1
        logger.info(f"Slow mode for chat {chat_id} set to {seconds}s ({updated} users)")
        return updated

    def record_message(self, chat_id: int, user_id: int, at: datetime) -> UserModerationState:
        with self.transaction(chat_id, user_id) as state:
            state.last_message_at = at
            return state.snapshot()

    def keys_for_chat(self, chat_id: int) -> List[StateKey]:
        with self._guard:
            return [key for key in list(self._states) if key[0] == chat_id]

    def __len__(self) -> int:
        return len(self._states)

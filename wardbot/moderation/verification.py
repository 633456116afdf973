"""Join-time verification gate.

State machine per (chat_id, user_id): NONE -> PENDING -> {VERIFIED, EXPIRED}.
Only the periodic sweep moves a challenge to EXPIRED, so every expired
challenge yields exactly one removal attempt.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from wardbot.moderation.models import ChallengeStatus, StateKey, VerificationChallenge

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


class VerificationOutcome(str, Enum):
    VERIFIED = "verified"
    WRONG_USER = "wrong_user"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class VerificationGate:
    """Tracks active challenges, one per (chat_id, user_id)."""

    def __init__(self, timeout: timedelta = timedelta(minutes=5)):
        self.timeout = timeout
        self._active: Dict[StateKey, VerificationChallenge] = {}

    def _codes_in_chat(self, chat_id: int) -> set:
        return {c.code for (cid, _), c in self._active.items() if cid == chat_id}

    def _unique_code(self, chat_id: int, taken: set) -> str:
        while True:
            code = generate_code()
            if code not in taken:
                return code

    def issue(self, chat_id: int, user_id: int, now: datetime) -> VerificationChallenge:
        """Create a challenge, replacing any pending one for the same user."""
        previous = self._active.get((chat_id, user_id))
        if previous is not None:
            logger.info(f"Replacing pending challenge for user {user_id} in chat {chat_id}")
        challenge = VerificationChallenge(
            chat_id=chat_id,
            user_id=user_id,
            code=self._unique_code(chat_id, self._codes_in_chat(chat_id)),
            issued_at=now,
            deadline=now + self.timeout,
        )
        self._active[challenge.key] = challenge
        return challenge

    def decoys(self, challenge: VerificationChallenge, count: int) -> List[str]:
        """Wrong codes to show next to the real one."""
        taken = self._codes_in_chat(challenge.chat_id) | {challenge.code}
        result = []
        for _ in range(count):
            code = self._unique_code(challenge.chat_id, taken)
            taken.add(code)
            result.append(code)
        return result

    def get(self, chat_id: int, user_id: int) -> Optional[VerificationChallenge]:
        return self._active.get((chat_id, user_id))

    def submit(
        self,
        chat_id: int,
        user_id: int,
        submitting_user_id: int,
        code: str,
        now: datetime,
    ) -> Tuple[VerificationOutcome, Optional[VerificationChallenge]]:
        """
        Check a code submission against the challenge issued to ``user_id``.

        A wrong code does not consume the challenge; the user can retry
        until the deadline.
        """
        challenge = self._active.get((chat_id, user_id))
        if challenge is None or challenge.status != ChallengeStatus.PENDING:
            return VerificationOutcome.NOT_FOUND, None
        if submitting_user_id != challenge.user_id:
            return VerificationOutcome.WRONG_USER, challenge
        if now >= challenge.deadline:
            return VerificationOutcome.EXPIRED, challenge
        if code != challenge.code:
            return VerificationOutcome.MISMATCH, challenge

        challenge.status = ChallengeStatus.VERIFIED
        del self._active[challenge.key]
        logger.info(f"User {user_id} verified in chat {chat_id}")
        return VerificationOutcome.VERIFIED, challenge

    def cancel(self, chat_id: int, user_id: int) -> Optional[VerificationChallenge]:
        """Drop a pending challenge (the user left on their own)."""
        return self._active.pop((chat_id, user_id), None)

    def expire_due(self, now: datetime) -> List[VerificationChallenge]:
        """Mark every challenge past its deadline EXPIRED and hand them back."""
        due = [c for c in self._active.values() if c.is_due(now)]
        for challenge in due:
            challenge.status = ChallengeStatus.EXPIRED
            del self._active[challenge.key]
        return due

    def __len__(self) -> int:
        return len(self._active)

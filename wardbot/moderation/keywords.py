"""Keyword filter: case-insensitive substring matching."""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import select

from wardbot.database.models import FilterKeyword
from wardbot.database.session import get_session

logger = logging.getLogger(__name__)


class KeywordFilter:
    def __init__(self, keywords: Iterable[str] = ()):
        self._keywords: List[str] = []
        self.replace(keywords)

    @property
    def keywords(self) -> List[str]:
        return list(self._keywords)

    def replace(self, keywords: Iterable[str]) -> None:
        """Swap the keyword set, dropping blanks and duplicates but keeping order."""
        cleaned: List[str] = []
        for keyword in keywords:
            keyword = keyword.strip().lower()
            if keyword and keyword not in cleaned:
                cleaned.append(keyword)
        self._keywords = cleaned

    def match(self, text: Optional[str]) -> Optional[str]:
        """
        Return the first configured keyword contained in ``text``.

        Args:
            text: Message text (may be None for non-text messages)

        Returns:
            The matched keyword, or None
        """
        if not text:
            return None
        lowered = text.lower()
        for keyword in self._keywords:
            if keyword in lowered:
                return keyword
        return None


async def load_keywords(keyword_filter: KeywordFilter, base: Iterable[str] = ()) -> int:
    """
    Merge active keywords from the database into the filter.

    Returns:
        Number of keywords in effect after the merge
    """
    async_session = get_session()
    async with async_session() as session:
        rows = await session.execute(
            select(FilterKeyword.keyword).filter_by(is_active=True)
        )
        stored = [row[0] for row in rows.all()]
    keyword_filter.replace(list(base) + stored)
    logger.info(f"Loaded {len(stored)} keywords from database, {len(keyword_filter.keywords)} in effect")
    return len(keyword_filter.keywords)

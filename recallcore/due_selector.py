"""
Selection of the cards a learner should review next.
"""

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from .constants import (
    DEFAULT_DUE_LIMIT,
    DEFAULT_HIGHLIGHT_LIMIT,
    HUGE_BATCH_SIZE,
    LARGE_BACKLOG,
    LARGE_BATCH_SIZE,
    MASTERY_THRESHOLD,
    MEDIUM_BACKLOG,
    MEDIUM_BATCH_MAX,
    MEDIUM_BATCH_MIN,
    MEDIUM_BATCH_RATIO,
    SMALL_BACKLOG,
    STRUGGLING_MIN_DIFFICULTY,
)
from .models import Card, CardFilter, DueOrder
from .ports import CardRepository

logger = logging.getLogger(__name__)


def recommended_batch_size(due_count: int) -> int:
    """
    How many cards to serve in one sitting for a given backlog.

    Small backlogs are served whole, medium ones at three quarters (between 5
    and 15 cards), large ones in batches of 20 and huge ones in batches of 25.
    """
    if due_count < 0:
        raise ValueError(f"Invalid due count: {due_count}.")
    if due_count <= SMALL_BACKLOG:
        return due_count
    if due_count <= MEDIUM_BACKLOG:
        scaled = math.floor(due_count * MEDIUM_BATCH_RATIO)
        return min(MEDIUM_BATCH_MAX, max(MEDIUM_BATCH_MIN, scaled))
    if due_count <= LARGE_BACKLOG:
        return LARGE_BATCH_SIZE
    return HUGE_BATCH_SIZE


class DueSetSelector:
    """
    Read-only queries over the card store: due cards and highlight lists.

    Ordering and limits are pushed into the store query, so a limit always
    returns the highest-priority cards rather than an arbitrary subset.
    """

    def __init__(self, cards: CardRepository):
        self.cards = cards

    def _due_filter(
        self,
        topic_id: Optional[str],
        now: Optional[datetime],
        order: DueOrder = DueOrder.OVERDUE,
        limit: Optional[int] = None,
    ) -> CardFilter:
        return CardFilter(
            topic_id=topic_id,
            due_before=now or datetime.now(timezone.utc),
            order=order,
            limit=limit,
        )

    def get_due_cards(
        self,
        owner_id: str,
        topic_id: Optional[str] = None,
        limit: Optional[int] = DEFAULT_DUE_LIMIT,
        order: DueOrder = DueOrder.OVERDUE,
        now: Optional[datetime] = None,
    ) -> List[Card]:
        """
        Cards with ``next_review_at <= now``, most overdue first by default.

        Args:
            owner_id: Learner whose cards are selected.
            topic_id: Restrict to one topic.
            limit: Maximum number of cards; None for no cap.
            order: OVERDUE (earliest next_review_at first) or PRIORITY
                (lowest last_retention first).
            now: Reference time (defaults to current time).
        """
        if limit is not None and limit < 0:
            raise ValueError(f"Invalid limit: {limit}.")
        cards = self.cards.list_cards(
            owner_id, self._due_filter(topic_id, now, order, limit)
        )
        logger.debug(
            f"Selected {len(cards)} due cards for owner '{owner_id}' "
            f"(topic={topic_id}, order={order.value}, limit={limit})"
        )
        return cards

    def get_priority_cards(
        self,
        owner_id: str,
        topic_id: Optional[str] = None,
        limit: Optional[int] = DEFAULT_DUE_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[Card]:
        """Due cards with the weakest retention first."""
        return self.get_due_cards(
            owner_id,
            topic_id=topic_id,
            limit=limit,
            order=DueOrder.PRIORITY,
            now=now,
        )

    def get_due_count(
        self,
        owner_id: str,
        topic_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        return self.cards.count_cards(owner_id, self._due_filter(topic_id, now))

    def get_study_batch(
        self,
        owner_id: str,
        topic_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Card]:
        """Due cards capped at the recommended batch size for the backlog."""
        now = now or datetime.now(timezone.utc)
        batch_size = recommended_batch_size(
            self.get_due_count(owner_id, topic_id=topic_id, now=now)
        )
        return self.get_due_cards(
            owner_id, topic_id=topic_id, limit=batch_size, now=now
        )

    def get_struggling_cards(
        self,
        owner_id: str,
        min_difficulty: float = STRUGGLING_MIN_DIFFICULTY,
        limit: Optional[int] = DEFAULT_HIGHLIGHT_LIMIT,
        topic_id: Optional[str] = None,
    ) -> List[Card]:
        """
        Cards with difficulty at or above ``min_difficulty``, hardest first.

        Due or not; this is the "needs work" list rather than a review queue.
        """
        if limit is not None and limit < 0:
            raise ValueError(f"Invalid limit: {limit}.")
        return self.cards.list_cards(
            owner_id,
            CardFilter(
                topic_id=topic_id,
                min_difficulty=min_difficulty,
                order=DueOrder.HARDEST,
                limit=limit,
            ),
        )

    def get_mastered_cards(
        self,
        owner_id: str,
        min_mastery: float = MASTERY_THRESHOLD,
        limit: Optional[int] = DEFAULT_HIGHLIGHT_LIMIT,
        topic_id: Optional[str] = None,
    ) -> List[Card]:
        """Cards with mastery at or above ``min_mastery``, best first."""
        if limit is not None and limit < 0:
            raise ValueError(f"Invalid limit: {limit}.")
        return self.cards.list_cards(
            owner_id,
            CardFilter(
                topic_id=topic_id,
                min_mastery=min_mastery,
                order=DueOrder.MASTERY,
                limit=limit,
            ),
        )

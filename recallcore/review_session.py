"""
This module defines the ReviewSession class, which drives one sitting of
reviews for a learner: it pulls a study batch from the DueSetSelector and
feeds the learner's ratings to the ReviewRecorder.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import UUID, uuid4

from .due_selector import DueSetSelector
from .exceptions import DatabaseError, LogWriteFailedError
from .models import Card, ReviewEvent
from .review_recorder import ReviewRecorder
from .scoring import BaseScheduler
from .db.database import StudyDatabase

logger = logging.getLogger(__name__)


class ReviewSession:
    """
    Manages a review session for one learner.

    This class is responsible for:
    - Loading a batch of due cards into a queue.
    - Providing cards one by one for review.
    - Recording ratings and keeping log writes that still need a retry.
    """

    def __init__(
        self,
        db: StudyDatabase,
        owner_id: str,
        topic_id: Optional[str] = None,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.db = db
        self.owner_id = owner_id
        self.topic_id = topic_id
        self.session_uuid = uuid4()
        self.selector = DueSetSelector(db)
        self.recorder = ReviewRecorder(db, db, scheduler=scheduler)
        self.review_queue: List[Card] = []
        self.current_session_card_ids: Set[UUID] = set()
        self.pending_log_writes: List[ReviewEvent] = []
        self.remembered_count = 0

    def initialize_session(
        self, limit: Optional[int] = None, now: Optional[datetime] = None
    ) -> None:
        """
        Fill the queue with due cards.

        Without ``limit`` the recommended batch size for the current backlog
        is used; otherwise up to ``limit`` of the most overdue cards.
        """
        logger.info(
            f"Initializing review session {self.session_uuid} for owner "
            f"'{self.owner_id}' (topic: {self.topic_id or 'all'})"
        )
        if limit is None:
            cards = self.selector.get_study_batch(
                self.owner_id, topic_id=self.topic_id, now=now
            )
        else:
            cards = self.selector.get_due_cards(
                self.owner_id, topic_id=self.topic_id, limit=limit, now=now
            )
        self.review_queue = list(cards)
        self.current_session_card_ids = {card.id for card in self.review_queue}
        logger.info(f"Initialized session with {len(self.review_queue)} cards.")

    def get_next_card(self) -> Optional[Card]:
        if not self.review_queue:
            logger.info("Review queue is empty. Session may be complete.")
            return None
        return self.review_queue[0]

    def _get_card_from_queue(self, card_id: UUID) -> Optional[Card]:
        for card in self.review_queue:
            if card.id == card_id:
                return card
        return None

    def _remove_card_from_queue(self, card_id: UUID) -> None:
        self.review_queue = [
            card for card in self.review_queue if card.id != card_id
        ]

    def submit_review(
        self,
        card_id: UUID,
        rating: int,
        reviewed_at: Optional[datetime] = None,
    ) -> Card:
        """
        Record a rating for a card in the current session.

        A card leaves the queue once its schedule has been written, including
        when only the log append failed; that event is kept for
        ``retry_pending_log_writes``.

        Raises:
            ValueError: If the card is not (or no longer) queued in this
                session, which also rejects duplicate submissions.
            ReviewError: If the review could not be recorded.
        """
        if self._get_card_from_queue(card_id) is None:
            raise ValueError(
                f"Card {card_id} not found in the current review session."
            )

        try:
            updated_card = self.recorder.record_review(
                self.owner_id, card_id, rating, reviewed_at=reviewed_at
            )
        except LogWriteFailedError as e:
            self.pending_log_writes.append(e.event)
            updated_card = e.card
        except Exception as e:
            logger.error(f"Failed to submit review for card {card_id}: {e}")
            raise

        if updated_card.repetition_count > 0:
            self.remembered_count += 1
        self._remove_card_from_queue(card_id)
        return updated_card

    def retry_pending_log_writes(self) -> int:
        """
        Re-append events whose log write failed earlier.

        Returns:
            The number of events still pending after the retry.
        """
        still_pending: List[ReviewEvent] = []
        for event in self.pending_log_writes:
            try:
                self.recorder.retry_log_write(event)
            except DatabaseError as e:
                logger.warning(f"Log write of review {event.id} failed again: {e}")
                still_pending.append(event)
        self.pending_log_writes = still_pending
        return len(still_pending)

    def get_session_stats(self) -> Dict[str, int]:
        """
        Provide aggregated statistics for the session.

        Returns:
            dict: total_cards, reviewed_cards, remembered_cards and
            pending_log_writes.
        """
        total_cards = len(self.current_session_card_ids)
        return {
            "total_cards": total_cards,
            "reviewed_cards": total_cards - len(self.review_queue),
            "remembered_cards": self.remembered_count,
            "pending_log_writes": len(self.pending_log_writes),
        }

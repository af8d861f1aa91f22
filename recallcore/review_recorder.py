"""
Review recording for recallcore.

The ReviewRecorder is the only writer of card scheduling state. One call
covers the whole write path of a review:
1. Card lookup
2. Scheduler computation
3. Card schedule update
4. Review log append
5. Failure classification
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from .exceptions import (
    CardNotFoundError,
    DatabaseError,
    LogWriteFailedError,
    ScheduleWriteFailedError,
)
from .models import Card, CardScheduleUpdate, ReviewEvent
from .ports import CardRepository, ReviewLogStore
from .scoring import BaseScheduler, SchedulerOutput, SM2Scheduler

logger = logging.getLogger(__name__)


class ReviewRecorder:
    """
    Applies review outcomes to cards and appends them to the review log.

    The card is written before the event. If the card write fails nothing
    was persisted; if the event append fails the schedule already advanced
    and only the append may be retried (see ``retry_log_write``).
    """

    def __init__(
        self,
        cards: CardRepository,
        reviews: ReviewLogStore,
        scheduler: Optional[BaseScheduler] = None,
    ):
        """
        Args:
            cards: Store holding the cards' scheduling state.
            reviews: Append-only review log.
            scheduler: Scheduler computing the next state; SM-2 on the recall
                scale by default.
        """
        self.cards = cards
        self.reviews = reviews
        self.scheduler = scheduler or SM2Scheduler()

    def record_review(
        self,
        owner_id: str,
        card_id: UUID,
        outcome_rating: int,
        reviewed_at: Optional[datetime] = None,
    ) -> Card:
        """
        Score one review, persist the card's new schedule, then log the event.

        Args:
            owner_id: Learner submitting the review.
            card_id: Card being reviewed.
            outcome_rating: Outcome rating 1-5, read with the scheduler's
                rating convention.
            reviewed_at: Review timestamp (defaults to current time).

        Returns:
            The updated Card.

        Raises:
            ValueError: If the rating is outside 1-5.
            CardNotFoundError: If the owner has no such card.
            ScheduleWriteFailedError: If the card could not be read or
                written. No event was written.
            LogWriteFailedError: If the card was updated but the event
                append failed. Carries the updated card and the event.
        """
        ts = reviewed_at or datetime.now(timezone.utc)

        try:
            card = self.cards.get_card(owner_id, card_id)
        except DatabaseError as e:
            logger.error(f"Failed to load card {card_id} for review: {e}")
            raise ScheduleWriteFailedError(
                f"Could not load card {card_id}: {e}", original_exception=e
            ) from e
        if card is None:
            raise CardNotFoundError(
                f"Card {card_id} not found for owner '{owner_id}'."
            )

        logger.debug(
            f"Recording review for card {card_id} with rating {outcome_rating}"
        )
        output: SchedulerOutput = self.scheduler.compute_next_state(
            card=card, outcome_rating=outcome_rating, review_ts=ts
        )

        update = CardScheduleUpdate(
            difficulty=output.difficulty,
            easiness_factor=output.easiness_factor,
            repetition_count=output.repetition_count,
            mastery_level=output.mastery_level,
            last_retention=output.retention,
            last_reviewed_at=ts,
            next_review_at=output.next_review_at,
        )
        try:
            updated_card = self.cards.update_card_schedule(
                owner_id, card_id, update
            )
        except DatabaseError as e:
            logger.error(f"Failed to write schedule of card {card_id}: {e}")
            raise ScheduleWriteFailedError(
                f"Could not update card {card_id}: {e}", original_exception=e
            ) from e
        if updated_card is None:
            raise CardNotFoundError(
                f"Card {card_id} disappeared before its schedule was written."
            )

        event = ReviewEvent(
            owner_id=owner_id,
            card_id=card_id,
            outcome_rating=output.recall_rating,
            retention_estimate=output.retention,
            reviewed_at=ts,
        )
        try:
            self.reviews.append_review(event)
        except DatabaseError as e:
            logger.warning(
                f"Card {card_id} rescheduled but review {event.id} was not logged: {e}"
            )
            raise LogWriteFailedError(
                f"Review log append failed for card {card_id}: {e}",
                card=updated_card,
                event=event,
                original_exception=e,
            ) from e

        logger.debug(
            f"Review recorded for card {card_id}. "
            f"Next review: {updated_card.next_review_at}, "
            f"reps: {updated_card.repetition_count}"
        )
        return updated_card

    def retry_log_write(self, event: ReviewEvent) -> None:
        """
        Re-append an event left behind by a LogWriteFailedError.

        The card is not scored again. Appending an event that already made it
        into the log is a no-op.

        Raises:
            DatabaseError: If the append fails again.
        """
        logger.info(f"Retrying log write of review {event.id}")
        self.reviews.append_review(event)

# recallcore/scoring.py

"""
SM-2 scoring functions and the scheduler that composes them.

The module-level functions are pure and deterministic. ``SM2Scheduler`` turns
one review outcome into the card's next scheduling state without touching any
store.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .constants import (
    FIRST_INTERVAL_DAYS,
    INITIAL_EASINESS_FACTOR,
    MASTERY_RECENT_WEIGHT,
    MAX_DIFFICULTY,
    MAX_INTERVAL_DAYS,
    MAX_RATING,
    MAX_RETENTION,
    MIN_DIFFICULTY,
    MIN_EASINESS_FACTOR,
    MIN_RATING,
    MIN_RETENTION,
    PASSING_RATING,
    RETENTION_BASE,
    RETENTION_DIFFICULTY_WEIGHT,
    RETENTION_EASINESS_WEIGHT,
    SECOND_INTERVAL_DAYS,
)
from .models import Card, RatingConvention, ensure_utc

logger = logging.getLogger(__name__)


def _check_rating(outcome_rating: int) -> None:
    if not (MIN_RATING <= outcome_rating <= MAX_RATING):
        raise ValueError(
            f"Invalid rating: {outcome_rating}. Must be {MIN_RATING}-{MAX_RATING}."
        )


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def normalize_rating(
    outcome_rating: int, convention: RatingConvention = RatingConvention.RECALL
) -> int:
    """
    Express a rating on the recall scale (1 = total failure, 5 = perfect).

    Difficulty-scale ratings (1 = easiest, 5 = hardest) are mirrored.
    """
    _check_rating(outcome_rating)
    if convention == RatingConvention.DIFFICULTY:
        return MAX_RATING + MIN_RATING - outcome_rating
    return outcome_rating


def quality_from_rating(
    outcome_rating: int, convention: RatingConvention = RatingConvention.RECALL
) -> int:
    """
    SM-2 recall quality for an outcome rating.

    Under the difficulty convention the quality is ``6 - rating``, so the
    hardest button maps to quality 1. Recall-scale ratings already are SM-2
    qualities and pass through unchanged.
    """
    _check_rating(outcome_rating)
    if convention == RatingConvention.DIFFICULTY:
        return 6 - outcome_rating
    return outcome_rating


def difficulty_from_rating(
    outcome_rating: int, convention: RatingConvention = RatingConvention.RECALL
) -> float:
    """The perceived difficulty (1 easy .. 5 hard) an outcome expresses."""
    _check_rating(outcome_rating)
    if convention == RatingConvention.DIFFICULTY:
        return float(outcome_rating)
    return float(MAX_RATING + MIN_RATING - outcome_rating)


def update_easiness_factor(current: float, outcome_quality: int) -> float:
    """
    Apply the SM-2 easiness update for a recall quality.

    Args:
        current: The card's easiness factor before the review.
        outcome_quality: SM-2 quality, 5 for perfect recall.

    Returns:
        The new easiness factor, never below 1.3.
    """
    q = outcome_quality
    new_ef = current + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    return max(MIN_EASINESS_FACTOR, new_ef)


def next_repetition_count(current: int, outcome_rating: int) -> int:
    """Reset to 0 on a lapse (rating < 3), otherwise count one more success."""
    if current < 0:
        raise ValueError(f"Invalid repetition count: {current}.")
    _check_rating(outcome_rating)
    if outcome_rating < PASSING_RATING:
        return 0
    return current + 1


def next_interval(
    repetition_count: int, easiness_factor: float, previous_interval_days: float
) -> int:
    """
    Days until the next review.

    1 day for the first repetition, 6 days for the second, then the previous
    interval scaled by the easiness factor, capped at ``MAX_INTERVAL_DAYS``.
    """
    if repetition_count < 0:
        raise ValueError(f"Invalid repetition count: {repetition_count}.")
    if previous_interval_days < 0:
        raise ValueError(
            f"Invalid previous interval: {previous_interval_days}."
        )
    if repetition_count <= 1:
        return FIRST_INTERVAL_DAYS
    if repetition_count == 2:
        return SECOND_INTERVAL_DAYS
    scaled = round(min(previous_interval_days, MAX_INTERVAL_DAYS) * easiness_factor)
    return min(MAX_INTERVAL_DAYS, max(FIRST_INTERVAL_DAYS, scaled))


def calculate_retention(difficulty: float, easiness_factor: float) -> float:
    """
    Estimate current retrievability from difficulty and easiness.

    Harder cards and lower easiness both lower the estimate. The result is
    clamped to [0.1, 1.0].
    """
    normalized_difficulty = (6 - difficulty) / 5
    normalized_ef = (easiness_factor - MIN_EASINESS_FACTOR) / (
        INITIAL_EASINESS_FACTOR - MIN_EASINESS_FACTOR
    )
    raw = (
        RETENTION_BASE
        + normalized_difficulty * RETENTION_DIFFICULTY_WEIGHT
        + normalized_ef * RETENTION_EASINESS_WEIGHT
    )
    return _clamp(raw, MIN_RETENTION, MAX_RETENTION)


def calculate_mastery_level(
    previous_mastery: float, retention: float, outcome_rating: int
) -> float:
    """
    Blend previous mastery with the latest outcome.

    Successful outcomes pull mastery toward the retention estimate; lapses
    decay it toward zero, so a failure never raises mastery.
    """
    _check_rating(outcome_rating)
    previous = _clamp(previous_mastery, 0.0, 1.0)
    target = _clamp(retention, 0.0, 1.0) if outcome_rating >= PASSING_RATING else 0.0
    blended = previous * (1 - MASTERY_RECENT_WEIGHT) + target * MASTERY_RECENT_WEIGHT
    return _clamp(blended, 0.0, 1.0)


@dataclass
class SchedulerOutput:
    easiness_factor: float
    repetition_count: int
    interval_days: int
    next_review_at: datetime
    difficulty: float
    retention: float
    mastery_level: float
    recall_rating: int


class BaseScheduler(ABC):
    """
    Abstract base class for card schedulers.
    """

    @abstractmethod
    def compute_next_state(
        self, card: Card, outcome_rating: int, review_ts: datetime
    ) -> SchedulerOutput:
        """
        Computes the next scheduling state of a card from one review outcome.

        Args:
            card: The Card with its current scheduling fields.
            outcome_rating: The rating given for this review (1-5).
            review_ts: The timestamp of this review.

        Returns:
            A SchedulerOutput object containing the new state.

        Raises:
            ValueError: If the outcome_rating is invalid.
        """
        pass


class SM2Scheduler(BaseScheduler):
    """
    SM-2 scheduler with retention and mastery estimates.
    """

    def __init__(self, convention: Optional[RatingConvention] = None):
        self.convention = convention or RatingConvention.RECALL

    def compute_next_state(
        self, card: Card, outcome_rating: int, review_ts: datetime
    ) -> SchedulerOutput:
        """
        Computes the next state of a card from its cached scheduling fields.
        """
        recall_rating = normalize_rating(outcome_rating, self.convention)
        quality = quality_from_rating(outcome_rating, self.convention)
        utc_review_ts = ensure_utc(review_ts)

        new_ef = update_easiness_factor(card.easiness_factor, quality)
        new_repetitions = next_repetition_count(card.repetition_count, recall_rating)
        interval = next_interval(
            new_repetitions, new_ef, card.previous_interval_days()
        )
        difficulty = _clamp(
            difficulty_from_rating(outcome_rating, self.convention),
            MIN_DIFFICULTY,
            MAX_DIFFICULTY,
        )
        retention = calculate_retention(difficulty, new_ef)
        mastery = calculate_mastery_level(card.mastery_level, retention, recall_rating)

        logger.debug(
            f"Card {card.id}: rating {outcome_rating} -> EF {new_ef:.2f}, "
            f"reps {new_repetitions}, interval {interval}d"
        )

        return SchedulerOutput(
            easiness_factor=new_ef,
            repetition_count=new_repetitions,
            interval_days=interval,
            next_review_at=utc_review_ts + timedelta(days=interval),
            difficulty=difficulty,
            retention=retention,
            mastery_level=mastery,
            recall_rating=recall_rating,
        )

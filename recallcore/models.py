"""
Pydantic models for cards, review events, store filters, study plans and
statistics.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Set
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_MINUTES_PER_CARD,
    FIRST_INTERVAL_DAYS,
    INITIAL_EASINESS_FACTOR,
    MAX_DIFFICULTY,
    MAX_RATING,
    MIN_DIFFICULTY,
    MIN_EASINESS_FACTOR,
    MIN_RATING,
    NEUTRAL_DIFFICULTY,
)


# Alias so the DailySchedule.date field does not shadow its own type.
CalendarDate = date


def ensure_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime. Naive values are taken as UTC."""
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=timezone.utc)
    if ts.tzinfo != timezone.utc:
        return ts.astimezone(timezone.utc)
    return ts


class Rating(IntEnum):
    """
    Outcome of a single review on the recall scale.
    """

    Blackout = 1
    Wrong = 2
    Hard = 3
    Good = 4
    Perfect = 5


class RatingConvention(str, Enum):
    """
    How incoming outcome ratings should be read.

    RECALL: 1 = total failure, 5 = perfect recall.
    DIFFICULTY: 1 = easiest, 5 = hardest (perceived-difficulty buttons).
    """

    RECALL = "recall"
    DIFFICULTY = "difficulty"


class DueOrder(str, Enum):
    """Ordering applied when selecting cards."""

    OVERDUE = "overdue"  # ascending next_review_at
    PRIORITY = "priority"  # ascending last_retention
    HARDEST = "hardest"  # descending difficulty
    MASTERY = "mastery"  # descending mastery_level


class Card(BaseModel):
    """
    A learnable prompt/answer pair owned by one learner, with its schedule.

    Scheduling fields are only mutated by the review recorder; content fields
    are opaque to the engine.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: UUID = Field(
        default_factory=uuid.uuid4,
        description="Unique UUIDv4 for the card. Auto-generated.",
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the learner owning the card.",
    )
    topic_id: Optional[str] = Field(
        default=None,
        description="Optional topic the card is tagged with.",
    )
    front: str = Field(default="", description="Prompt text (opaque).")
    back: str = Field(default="", description="Answer text (opaque).")
    difficulty: float = Field(
        default=NEUTRAL_DIFFICULTY,
        ge=MIN_DIFFICULTY,
        le=MAX_DIFFICULTY,
        description="Perceived difficulty of the last outcome (1 easy - 5 hard).",
    )
    easiness_factor: float = Field(
        default=INITIAL_EASINESS_FACTOR,
        ge=MIN_EASINESS_FACTOR,
        description="SM-2 easiness factor; never below 1.3.",
    )
    repetition_count: int = Field(
        default=0,
        ge=0,
        description="Consecutive successful reviews; reset on a lapse.",
    )
    mastery_level: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Smoothed indicator of long-run command of the card.",
    )
    last_retention: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Most recent retrievability estimate (None if never reviewed).",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the card was authored.",
    )
    next_review_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the card is next due.",
    )
    last_reviewed_at: Optional[datetime] = Field(
        default=None,
        description="UTC timestamp of the last review (None if never reviewed).",
    )

    @field_validator("created_at", "next_review_at", "last_reviewed_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Store every timestamp as aware UTC."""
        return ensure_utc(v) if v is not None else None

    def is_due(self, now: datetime) -> bool:
        """Check if the card is due at ``now``."""
        return self.next_review_at <= ensure_utc(now)

    def previous_interval_days(self) -> int:
        """
        Interval of the current schedule in whole days.

        Derived from the ``last_reviewed_at`` -> ``next_review_at`` delta;
        defaults to one day for cards that were never reviewed.
        """
        if self.last_reviewed_at is None:
            return FIRST_INTERVAL_DAYS
        delta = self.next_review_at - self.last_reviewed_at
        days = round(delta / timedelta(days=1))
        return max(FIRST_INTERVAL_DAYS, days)

    @property
    def is_new(self) -> bool:
        """True if the card has never been reviewed."""
        return self.last_reviewed_at is None


class ReviewEvent(BaseModel):
    """
    Immutable record of one review outcome.

    The ``id`` doubles as the idempotency key: appending the same event twice
    stores it once.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID = Field(
        default_factory=uuid.uuid4,
        description="Unique UUIDv4 for the event.",
    )
    owner_id: str = Field(..., min_length=1)
    card_id: UUID = Field(..., description="UUID of the reviewed card.")
    outcome_rating: int = Field(
        ...,
        ge=MIN_RATING,
        le=MAX_RATING,
        description="Outcome on the recall scale (1=failure, 5=perfect).",
    )
    retention_estimate: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Retention estimate computed for this review.",
    )
    reviewed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the review occurred.",
    )

    @field_validator("reviewed_at")
    @classmethod
    def normalize_reviewed_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def remembered(self) -> bool:
        """Whether the outcome counts as recalled."""
        return self.outcome_rating >= Rating.Hard


class CardScheduleUpdate(BaseModel):
    """Scheduling fields written back to a card after one review."""

    model_config = ConfigDict(extra="forbid")

    difficulty: float = Field(..., ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY)
    easiness_factor: float = Field(..., ge=MIN_EASINESS_FACTOR)
    repetition_count: int = Field(..., ge=0)
    mastery_level: float = Field(..., ge=0.0, le=1.0)
    last_retention: float = Field(..., ge=0.0, le=1.0)
    last_reviewed_at: datetime
    next_review_at: datetime

    @field_validator("last_reviewed_at", "next_review_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class CardFilter(BaseModel):
    """Filter for card queries. Every condition is optional."""

    model_config = ConfigDict(extra="forbid")

    topic_id: Optional[str] = None
    due_before: Optional[datetime] = Field(
        default=None, description="Only cards with next_review_at <= this."
    )
    due_after: Optional[datetime] = Field(
        default=None, description="Only cards with next_review_at >= this."
    )
    min_mastery: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    min_difficulty: Optional[float] = Field(
        default=None, ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY
    )
    order: DueOrder = DueOrder.OVERDUE
    limit: Optional[int] = Field(default=None, ge=0)


class ReviewFilter(BaseModel):
    """Filter for review-log queries. Every condition is optional."""

    model_config = ConfigDict(extra="forbid")

    card_id: Optional[UUID] = None
    start_ts: Optional[datetime] = Field(
        default=None, description="Only events with reviewed_at >= this."
    )
    end_ts: Optional[datetime] = Field(
        default=None, description="Only events with reviewed_at <= this."
    )
    min_rating: Optional[int] = Field(default=None, ge=MIN_RATING, le=MAX_RATING)


class ScheduledCard(BaseModel):
    """One card slot in a day's plan."""

    card_id: UUID
    allocated_minutes: int = Field(..., ge=0)
    source: str = Field(
        ..., description="'due' for cards due that day, 'backlog' for backfill."
    )
    next_review_at: datetime


class DailySchedule(BaseModel):
    """Cards planned for one calendar day."""

    date: CalendarDate
    items: List[ScheduledCard] = Field(default_factory=list)
    total_minutes: int = 0
    budget_minutes: int
    over_budget: bool = False

    @property
    def card_ids(self) -> List[UUID]:
        return [item.card_id for item in self.items]


class StudyPlanRequest(BaseModel):
    """Parameters of a forward study plan."""

    start_date: date
    end_date: date
    daily_budget_minutes: int
    available_weekdays: Set[int] = Field(
        default_factory=set,
        description="Weekdays that may hold sessions (0=Monday ... 6=Sunday).",
    )
    minutes_per_card: int = DEFAULT_MINUTES_PER_CARD


class StudyPlan(BaseModel):
    """Planned days plus the backlog that did not fit into any of them."""

    days: List[DailySchedule] = Field(default_factory=list)
    carried_over: List[UUID] = Field(default_factory=list)


class RetentionBucket(BaseModel):
    """Remembered/total counts for one grouping of review events."""

    total: int = 0
    remembered: int = 0
    rate: float = 0.0


class RetentionReport(BaseModel):
    """Observed retention across an owner's review history."""

    overall_retention: float = 0.0
    total_reviews: int = 0
    remembered_reviews: int = 0
    per_card_retention: Dict[UUID, RetentionBucket] = Field(default_factory=dict)
    per_day_retention: Dict[date, RetentionBucket] = Field(default_factory=dict)
    per_topic_retention: Dict[str, RetentionBucket] = Field(default_factory=dict)


class LearningStats(BaseModel):
    """Dashboard statistics for one learner."""

    total_cards: int = 0
    mastered_cards: int = 0
    due_cards: int = 0
    average_difficulty: float = NEUTRAL_DIFFICULTY
    reviews_today: int = 0
    learning_cards: int = 0
    new_cards: int = 0
    struggling_cards: int = 0
    reviews_yesterday: int = 0
    reviews_last_7_days: List[int] = Field(default_factory=lambda: [0] * 7)
    streak_days: int = 0
    average_retention: float = 0.0
    average_easiness_factor: float = INITIAL_EASINESS_FACTOR
    recommended_batch_size: int = 0

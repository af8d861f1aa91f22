"""
Read-only learning statistics: the dashboard summary and observed retention.

Everything here tolerates empty data; ratios over nothing are reported as 0.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from .constants import (
    INITIAL_EASINESS_FACTOR,
    MASTERY_THRESHOLD,
    NEUTRAL_DIFFICULTY,
    PASSING_RATING,
    STREAK_LOOKBACK_DAYS,
    STRUGGLING_EASINESS_FACTOR,
    STRUGGLING_MIN_REPETITIONS,
)
from .due_selector import recommended_batch_size
from .models import (
    Card,
    CardFilter,
    LearningStats,
    RetentionBucket,
    RetentionReport,
    ReviewEvent,
    ReviewFilter,
    ensure_utc,
)
from .ports import CardRepository, ReviewLogStore

logger = logging.getLogger(__name__)


def _local_now(now: Optional[datetime]) -> datetime:
    """The reference time, aware; naive values are taken as UTC."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


def _bucket(total: int, remembered: int) -> RetentionBucket:
    return RetentionBucket(
        total=total, remembered=remembered, rate=_ratio(remembered, total)
    )


def current_streak(review_days: Iterable[date], today: date) -> int:
    """
    Consecutive days with at least one review, ending today.

    A learner who has not reviewed yet today has no running streak.
    """
    days = set(review_days)
    streak = 0
    day = today
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


class StatsAggregator:
    """
    Computes learning statistics from the card store and the review log.
    """

    def __init__(self, cards: CardRepository, reviews: ReviewLogStore):
        self.cards = cards
        self.reviews = reviews

    def _card_stats(self, cards: List[Card], now: datetime) -> Dict[str, object]:
        total = len(cards)
        reviewed = [c for c in cards if not c.is_new]
        retentions = [
            c.last_retention for c in reviewed if c.last_retention is not None
        ]
        due_count = sum(1 for c in cards if c.is_due(now))
        return {
            "total_cards": total,
            "mastered_cards": sum(
                1 for c in cards if c.mastery_level >= MASTERY_THRESHOLD
            ),
            "due_cards": due_count,
            "average_difficulty": (
                sum(c.difficulty for c in cards) / total
                if total
                else NEUTRAL_DIFFICULTY
            ),
            "learning_cards": sum(
                1 for c in reviewed if c.mastery_level < MASTERY_THRESHOLD
            ),
            "new_cards": total - len(reviewed),
            "struggling_cards": sum(
                1
                for c in cards
                if c.easiness_factor < STRUGGLING_EASINESS_FACTOR
                and c.repetition_count >= STRUGGLING_MIN_REPETITIONS
            ),
            "average_retention": (
                sum(retentions) / len(retentions) if retentions else 0.0
            ),
            "average_easiness_factor": (
                sum(c.easiness_factor for c in cards) / total
                if total
                else INITIAL_EASINESS_FACTOR
            ),
            "recommended_batch_size": recommended_batch_size(due_count),
        }

    def _daily_review_counts(
        self, owner_id: str, today: date, tz: tzinfo
    ) -> Counter:
        """Review counts per local calendar day over the streak lookback."""
        window = ReviewFilter(
            start_ts=_start_of_day(
                today - timedelta(days=STREAK_LOOKBACK_DAYS), tz
            ),
            end_ts=_start_of_day(today + timedelta(days=1), tz)
            - timedelta(microseconds=1),
        )
        events = self.reviews.list_reviews(owner_id, window)
        return Counter(event.reviewed_at.astimezone(tz).date() for event in events)

    def get_stats(
        self, owner_id: str, now: Optional[datetime] = None
    ) -> LearningStats:
        """
        Dashboard statistics for one learner.

        Day boundaries (reviews today, yesterday, the 7-day histogram and the
        streak) are taken in the timezone of ``now``.
        """
        now = _local_now(now)
        tz = now.tzinfo
        today = now.date()

        cards = self.cards.list_cards(owner_id)
        per_day = self._daily_review_counts(owner_id, today, tz)

        stats = LearningStats(
            **self._card_stats(cards, ensure_utc(now)),
            reviews_today=per_day.get(today, 0),
            reviews_yesterday=per_day.get(today - timedelta(days=1), 0),
            reviews_last_7_days=[
                per_day.get(today - timedelta(days=offset), 0)
                for offset in range(6, -1, -1)
            ],
            streak_days=current_streak(per_day.keys(), today),
        )
        logger.debug(
            f"Stats for owner '{owner_id}': {stats.total_cards} cards, "
            f"{stats.due_cards} due, {stats.reviews_today} reviews today"
        )
        return stats

    def get_retention(
        self,
        owner_id: str,
        tz: Optional[tzinfo] = None,
        topic_id: Optional[str] = None,
    ) -> RetentionReport:
        """
        Observed retention over the owner's review history.

        A review counts as remembered when its outcome is at least 3. Events
        are grouped overall, per card, per topic and per calendar day in
        ``tz`` (UTC by default). With ``topic_id`` only reviews of that
        topic's cards are counted. Cards without a topic get no topic bucket.
        """
        tz = tz or timezone.utc
        card_filter = CardFilter(topic_id=topic_id) if topic_id is not None else None
        topics: Dict[UUID, Optional[str]] = {
            card.id: card.topic_id
            for card in self.cards.list_cards(owner_id, card_filter)
        }
        events: List[ReviewEvent] = self.reviews.list_reviews(owner_id)
        if topic_id is not None:
            events = [event for event in events if event.card_id in topics]

        per_card: Dict[UUID, Tuple[int, int]] = defaultdict(lambda: (0, 0))
        per_day: Dict[date, Tuple[int, int]] = defaultdict(lambda: (0, 0))
        per_topic: Dict[str, Tuple[int, int]] = defaultdict(lambda: (0, 0))
        remembered_total = 0
        for event in events:
            hit = 1 if event.outcome_rating >= PASSING_RATING else 0
            remembered_total += hit
            total, remembered = per_card[event.card_id]
            per_card[event.card_id] = (total + 1, remembered + hit)
            day = event.reviewed_at.astimezone(tz).date()
            total, remembered = per_day[day]
            per_day[day] = (total + 1, remembered + hit)
            topic = topics.get(event.card_id)
            if topic is not None:
                total, remembered = per_topic[topic]
                per_topic[topic] = (total + 1, remembered + hit)

        return RetentionReport(
            overall_retention=_ratio(remembered_total, len(events)),
            total_reviews=len(events),
            remembered_reviews=remembered_total,
            per_card_retention={
                card_id: _bucket(*counts) for card_id, counts in per_card.items()
            },
            per_day_retention={
                day: _bucket(*counts) for day, counts in sorted(per_day.items())
            },
            per_topic_retention={
                name: _bucket(*counts) for name, counts in sorted(per_topic.items())
            },
        )

"""
Forward study planning: spreads due and overdue cards across future days
under a daily time budget.
"""

import logging
from collections import defaultdict, deque
from datetime import date, timedelta, timezone, tzinfo
from typing import Deque, Dict, Iterable, Iterator, List, Optional

from .exceptions import InvalidConfigurationError
from .models import (
    Card,
    DailySchedule,
    ScheduledCard,
    StudyPlan,
    StudyPlanRequest,
)
from .ports import CardRepository

logger = logging.getLogger(__name__)


def _validate_request(request: StudyPlanRequest) -> bool:
    """
    Check a plan request. Returns False when the plan is trivially empty.

    Raises:
        InvalidConfigurationError: For a non-positive budget or card cost, or
            a weekday outside 0-6.
    """
    if request.daily_budget_minutes <= 0:
        raise InvalidConfigurationError(
            f"Daily budget must be positive, got {request.daily_budget_minutes}."
        )
    if request.minutes_per_card <= 0:
        raise InvalidConfigurationError(
            f"Minutes per card must be positive, got {request.minutes_per_card}."
        )
    invalid_days = sorted(d for d in request.available_weekdays if not 0 <= d <= 6)
    if invalid_days:
        raise InvalidConfigurationError(
            f"Weekdays must be in 0-6 (0=Monday), got {invalid_days}."
        )
    if not request.available_weekdays:
        logger.warning("No available weekdays given; the study plan is empty.")
        return False
    if request.start_date > request.end_date:
        logger.warning(
            f"Start date {request.start_date} is after end date "
            f"{request.end_date}; the study plan is empty."
        )
        return False
    return True


def _sort_key(card: Card):
    return (card.next_review_at, str(card.id))


class _Planner:
    """
    Walks the date range once. Cards still waiting in ``backlog`` after the
    walk are the carried-over work.
    """

    def __init__(
        self, cards: Iterable[Card], request: StudyPlanRequest, tz: tzinfo
    ):
        self.request = request
        self.tz = tz
        self.capacity = request.daily_budget_minutes // request.minutes_per_card
        self.backlog: Deque[Card] = deque()
        self.due_by_day: Dict[date, List[Card]] = defaultdict(list)

        for card in sorted(cards, key=_sort_key):
            due_day = card.next_review_at.astimezone(tz).date()
            if due_day < request.start_date:
                self.backlog.append(card)
            elif due_day <= request.end_date:
                self.due_by_day[due_day].append(card)

    def _scheduled(self, card: Card, source: str) -> ScheduledCard:
        return ScheduledCard(
            card_id=card.id,
            allocated_minutes=self.request.minutes_per_card,
            source=source,
            next_review_at=card.next_review_at,
        )

    def iter_days(self) -> Iterator[DailySchedule]:
        request = self.request
        day = request.start_date
        while day <= request.end_date:
            due_today = self.due_by_day.pop(day, [])
            if day.weekday() not in request.available_weekdays:
                # Work due on a skipped day waits for the next session.
                self.backlog.extend(due_today)
                day += timedelta(days=1)
                continue

            items = [self._scheduled(card, "due") for card in due_today]
            free_slots = max(0, self.capacity - len(due_today))
            while free_slots and self.backlog:
                items.append(self._scheduled(self.backlog.popleft(), "backlog"))
                free_slots -= 1

            due_minutes = len(due_today) * request.minutes_per_card
            schedule = DailySchedule(
                date=day,
                items=items,
                total_minutes=len(items) * request.minutes_per_card,
                budget_minutes=request.daily_budget_minutes,
                over_budget=due_minutes > request.daily_budget_minutes,
            )
            if schedule.over_budget:
                logger.info(
                    f"{day}: {len(due_today)} due cards need {due_minutes} min, "
                    f"over the {request.daily_budget_minutes} min budget."
                )
            yield schedule
            day += timedelta(days=1)


def iter_daily_schedules(
    cards: Iterable[Card],
    request: StudyPlanRequest,
    tz: Optional[tzinfo] = None,
) -> Iterator[DailySchedule]:
    """
    Lazily plan sessions for already-fetched cards, one eligible day at a time.

    Days outside ``available_weekdays`` are skipped. Each eligible day takes
    every card due on it, then backfills the remaining capacity
    (``daily_budget_minutes // minutes_per_card``) with the oldest unscheduled
    overdue cards. Consumers may stop iterating at any point.
    """
    if not _validate_request(request):
        return
    planner = _Planner(cards, request, tz or timezone.utc)
    yield from planner.iter_days()


class SessionScheduler:
    """
    Plans study sessions over a date range from an owner's cards.
    """

    def __init__(self, cards: CardRepository):
        self.cards = cards

    def plan_schedule(
        self,
        owner_id: str,
        request: StudyPlanRequest,
        tz: Optional[tzinfo] = None,
    ) -> List[DailySchedule]:
        """
        Daily schedules for every eligible day in the request's range.

        Returns an empty list for an empty weekday set or an inverted range.

        Raises:
            InvalidConfigurationError: For a non-positive budget or card cost,
                or a weekday outside 0-6.
        """
        return self.plan(owner_id, request, tz=tz).days

    def plan(
        self,
        owner_id: str,
        request: StudyPlanRequest,
        tz: Optional[tzinfo] = None,
    ) -> StudyPlan:
        """
        Like ``plan_schedule``, but also reports the cards that were due by
        the end of the range and did not fit into any session.
        """
        if not _validate_request(request):
            return StudyPlan()

        planner = _Planner(self.cards.list_cards(owner_id), request, tz or timezone.utc)
        days = list(planner.iter_days())
        carried_over = [card.id for card in planner.backlog]
        if carried_over:
            logger.info(
                f"{len(carried_over)} cards did not fit into the plan for "
                f"owner '{owner_id}' and carry over past {request.end_date}."
            )
        return StudyPlan(days=days, carried_over=carried_over)

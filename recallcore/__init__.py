"""recallcore - A spaced-repetition scheduling engine for study cards."""

from .models import (
    Card,
    ReviewEvent,
    Rating,
    RatingConvention,
    DueOrder,
    LearningStats,
    RetentionReport,
    DailySchedule,
    StudyPlan,
    StudyPlanRequest,
)
from .db import StudyDatabase
from .scoring import SM2Scheduler
from .review_recorder import ReviewRecorder
from .due_selector import DueSetSelector, recommended_batch_size
from .stats import StatsAggregator
from .session_scheduler import SessionScheduler, iter_daily_schedules
from .review_session import ReviewSession

__all__ = [
    "Card",
    "ReviewEvent",
    "Rating",
    "RatingConvention",
    "DueOrder",
    "LearningStats",
    "RetentionReport",
    "DailySchedule",
    "StudyPlan",
    "StudyPlanRequest",
    "StudyDatabase",
    "SM2Scheduler",
    "ReviewRecorder",
    "DueSetSelector",
    "recommended_batch_size",
    "StatsAggregator",
    "SessionScheduler",
    "iter_daily_schedules",
    "ReviewSession",
]

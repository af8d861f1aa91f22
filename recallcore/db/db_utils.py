"""
Utility functions for data marshalling between Pydantic models and database formats.
This module helps decouple the core database logic from the specifics of data conversion.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..exceptions import MarshallingError
from ..models import Card, CardScheduleUpdate, ReviewEvent, ensure_utc


def to_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware timestamp into the naive UTC value stored in DuckDB."""
    if ts is None:
        return None
    return ensure_utc(ts).replace(tzinfo=None)


def from_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive timestamp read back from DuckDB."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def card_to_db_params_list(cards: Sequence[Card]) -> List[Tuple]:
    """
    Convert a sequence of Card models into a list of tuples suitable for bulk database insertion.

    Returns:
        List[Tuple]: One tuple per card, with fields in the following order:
        (id, owner_id, topic_id, front, back, difficulty, easiness_factor,
        repetition_count, mastery_level, last_retention, created_at,
        next_review_at, last_reviewed_at).
    """
    return [
        (
            card.id,
            card.owner_id,
            card.topic_id,
            card.front,
            card.back,
            card.difficulty,
            card.easiness_factor,
            card.repetition_count,
            card.mastery_level,
            card.last_retention,
            to_db_timestamp(card.created_at),
            to_db_timestamp(card.next_review_at),
            to_db_timestamp(card.last_reviewed_at),
        )
        for card in cards
    ]


def schedule_update_to_db_params(update: CardScheduleUpdate) -> Tuple:
    """
    Serialize the scheduling fields of a review into a tuple for an UPDATE.

    Returns:
        tuple: (difficulty, easiness_factor, repetition_count, mastery_level,
        last_retention, last_reviewed_at, next_review_at)
    """
    return (
        update.difficulty,
        update.easiness_factor,
        update.repetition_count,
        update.mastery_level,
        update.last_retention,
        to_db_timestamp(update.last_reviewed_at),
        to_db_timestamp(update.next_review_at),
    )


def db_row_to_card(row_dict: Dict[str, Any]) -> Card:
    """
    Create a Card model from a database row dictionary.

    Raises:
        MarshallingError: If the row cannot be validated into a Card (wraps the original ValidationError).
    """
    data = row_dict.copy()
    for key in ("created_at", "next_review_at", "last_reviewed_at"):
        data[key] = from_db_timestamp(data.get(key))
    data["front"] = data.get("front") or ""
    data["back"] = data.get("back") or ""

    try:
        return Card(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse card from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def review_to_db_params_tuple(event: ReviewEvent) -> Tuple:
    """
    Convert a ReviewEvent into a tuple suitable for database insertion.

    Returns:
        tuple: (id, owner_id, card_id, outcome_rating, retention_estimate, reviewed_at)
    """
    return (
        event.id,
        event.owner_id,
        event.card_id,
        event.outcome_rating,
        event.retention_estimate,
        to_db_timestamp(event.reviewed_at),
    )


def db_row_to_review(row_dict: Dict[str, Any]) -> ReviewEvent:
    """Converts a database row dictionary to a ReviewEvent model."""
    data = row_dict.copy()
    data["reviewed_at"] = from_db_timestamp(data.get("reviewed_at"))
    try:
        return ReviewEvent(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Data validation failed for review event: {e}",
            original_exception=e,
        ) from e

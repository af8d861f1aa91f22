"""
Test suite for recallcore.db (StudyDatabase), covering connection, schema,
card and review-log operations, filters, and timestamp handling.
"""

import pytest

from datetime import datetime, timedelta, timezone
from pathlib import Path

from recallcore.db import StudyDatabase
from recallcore.exceptions import DatabaseConnectionError
from recallcore.models import (
    Card,
    CardFilter,
    CardScheduleUpdate,
    DueOrder,
    ReviewEvent,
    ReviewFilter,
)

from .conftest import NOW, OTHER_OWNER, OWNER

UTC = timezone.utc


def _event(card: Card, rating: int, reviewed_at: datetime, owner: str = OWNER) -> ReviewEvent:
    return ReviewEvent(
        owner_id=owner,
        card_id=card.id,
        outcome_rating=rating,
        retention_estimate=0.7,
        reviewed_at=reviewed_at,
    )


def _ids(named_cards, *names):
    return [named_cards[name].id for name in names]


class TestSchemaAndConnection:
    def test_initialize_schema_creates_tables(self, initialized_db: StudyDatabase):
        conn = initialized_db.get_connection()
        tables = {
            row[0]
            for row in conn.execute(
                "SELECT table_name FROM information_schema.tables"
            ).fetchall()
        }
        assert {"cards", "reviews"} <= tables

    def test_initialize_schema_is_idempotent(self, initialized_db: StudyDatabase, make_card):
        initialized_db.add_cards([make_card()])
        initialized_db.initialize_schema()
        assert initialized_db.count_cards(OWNER) == 1

    def test_context_manager_initializes_new_file_db(self, db_path_file: Path):
        with StudyDatabase(db_path_file) as db:
            assert db.count_cards(OWNER) == 0
        assert db_path_file.exists()

    def test_memory_path_is_not_resolved(self):
        db = StudyDatabase(":MEMORY:")
        assert str(db.db_path_resolved) == ":memory:"

    def test_force_recreate_drops_data_in_memory(self, db_path_memory: str, make_card):
        db = StudyDatabase(db_path_memory)
        db.initialize_schema()
        db.add_cards([make_card()])
        db.initialize_schema(force_recreate_tables=True)
        assert db.count_cards(OWNER) == 0
        db.close_connection()

    def test_force_recreate_refuses_to_drop_file_data(self, db_path_file: Path, make_card):
        with StudyDatabase(db_path_file) as db:
            db.add_cards([make_card()])
            with pytest.raises(ValueError, match="CRITICAL"):
                db.initialize_schema(force_recreate_tables=True)
            assert db.count_cards(OWNER) == 1

    def test_force_recreate_allowed_in_testing_mode(self, db_path_file: Path, make_card, monkeypatch):
        monkeypatch.setenv("RECALLCORE_TESTING_MODE", "true")
        with StudyDatabase(db_path_file) as db:
            db.add_cards([make_card()])
            db.initialize_schema(force_recreate_tables=True)
            assert db.count_cards(OWNER) == 0


class TestReadOnly:
    @pytest.fixture
    def read_only_db(self, db_path_file: Path, make_card):
        with StudyDatabase(db_path_file) as db:
            db.add_cards([make_card()])
        db = StudyDatabase(db_path_file, read_only=True)
        yield db
        db.close_connection()

    def test_reads_work(self, read_only_db: StudyDatabase):
        assert read_only_db.count_cards(OWNER) == 1

    def test_writes_raise(self, read_only_db: StudyDatabase, make_card):
        card = read_only_db.list_cards(OWNER)[0]
        update = CardScheduleUpdate(
            difficulty=2.0,
            easiness_factor=2.6,
            repetition_count=1,
            mastery_level=0.4,
            last_retention=0.9,
            last_reviewed_at=NOW,
            next_review_at=NOW + timedelta(days=1),
        )
        with pytest.raises(DatabaseConnectionError):
            read_only_db.add_cards([make_card()])
        with pytest.raises(DatabaseConnectionError):
            read_only_db.update_card_schedule(OWNER, card.id, update)
        with pytest.raises(DatabaseConnectionError):
            read_only_db.append_review(_event(card, 4, NOW))


class TestCards:
    def test_add_and_get_card_round_trip(self, initialized_db: StudyDatabase, make_card):
        card = make_card(topic_id="biology", last_retention=0.75, mastery_level=0.5)
        assert initialized_db.add_cards([card]) == 1

        fetched = initialized_db.get_card(OWNER, card.id)

        assert fetched == card
        assert fetched.next_review_at.tzinfo == UTC

    def test_add_cards_empty_is_noop(self, initialized_db: StudyDatabase):
        assert initialized_db.add_cards([]) == 0

    def test_add_cards_upserts_existing(self, initialized_db: StudyDatabase, make_card):
        card = make_card(front="Old")
        initialized_db.add_cards([card])
        initialized_db.add_cards([card.model_copy(update={"front": "New"})])

        assert initialized_db.count_cards(OWNER) == 1
        assert initialized_db.get_card(OWNER, card.id).front == "New"

    def test_get_card_is_scoped_to_owner(self, initialized_db: StudyDatabase, make_card):
        card = make_card()
        initialized_db.add_cards([card])

        assert initialized_db.get_card(OTHER_OWNER, card.id) is None

    def test_get_missing_card_returns_none(self, initialized_db: StudyDatabase, make_card):
        assert initialized_db.get_card(OWNER, make_card().id) is None

    def test_non_utc_timestamps_keep_their_instant(self, initialized_db: StudyDatabase, make_card):
        plus_five = timezone(timedelta(hours=5))
        due = datetime(2024, 3, 15, 17, 0, tzinfo=plus_five)
        card = make_card(next_review_at=due)
        initialized_db.add_cards([card])

        fetched = initialized_db.get_card(OWNER, card.id)

        assert fetched.next_review_at == due
        assert fetched.next_review_at == datetime(2024, 3, 15, 12, 0, tzinfo=UTC)

    def test_update_card_schedule(self, initialized_db: StudyDatabase, make_card):
        card = make_card()
        initialized_db.add_cards([card])
        update = CardScheduleUpdate(
            difficulty=2.0,
            easiness_factor=2.6,
            repetition_count=1,
            mastery_level=0.4,
            last_retention=0.9,
            last_reviewed_at=NOW,
            next_review_at=NOW + timedelta(days=1),
        )

        updated = initialized_db.update_card_schedule(OWNER, card.id, update)

        assert updated.easiness_factor == 2.6
        assert updated.repetition_count == 1
        assert updated.last_reviewed_at == NOW
        assert updated.next_review_at == NOW + timedelta(days=1)
        assert updated.front == card.front
        assert initialized_db.get_card(OWNER, card.id) == updated

    def test_update_missing_card_returns_none(self, initialized_db: StudyDatabase, make_card):
        update = CardScheduleUpdate(
            difficulty=2.0,
            easiness_factor=2.6,
            repetition_count=1,
            mastery_level=0.4,
            last_retention=0.9,
            last_reviewed_at=NOW,
            next_review_at=NOW + timedelta(days=1),
        )
        assert initialized_db.update_card_schedule(OWNER, make_card().id, update) is None

    def test_update_does_not_touch_other_owner(self, initialized_db: StudyDatabase, make_card):
        card = make_card()
        initialized_db.add_cards([card])
        update = CardScheduleUpdate(
            difficulty=2.0,
            easiness_factor=2.6,
            repetition_count=1,
            mastery_level=0.4,
            last_retention=0.9,
            last_reviewed_at=NOW,
            next_review_at=NOW + timedelta(days=1),
        )
        assert initialized_db.update_card_schedule(OTHER_OWNER, card.id, update) is None
        assert initialized_db.get_card(OWNER, card.id).repetition_count == 0


class TestCardQueries:
    @pytest.fixture
    def named_cards(self, make_card):
        return {
            "overdue_3d": make_card(timedelta(days=-3), topic_id="math", last_retention=0.9),
            "overdue_1d": make_card(timedelta(days=-1), topic_id="bio", last_retention=0.4),
            "due_now": make_card(timedelta(0), topic_id="math"),
            "future": make_card(timedelta(days=2), topic_id="math", mastery_level=0.9),
            "other_owner": make_card(timedelta(days=-5), owner_id=OTHER_OWNER),
        }

    @pytest.fixture
    def populated_db(self, initialized_db: StudyDatabase, named_cards):
        initialized_db.add_cards(list(named_cards.values()))
        return initialized_db

    def test_list_all_owner_cards_in_overdue_order(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(OWNER)
        assert [c.id for c in cards] == _ids(named_cards, "overdue_3d", "overdue_1d", "due_now", "future")

    def test_due_before_filter(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(OWNER, CardFilter(due_before=NOW))
        assert [c.id for c in cards] == _ids(named_cards, "overdue_3d", "overdue_1d", "due_now")

    def test_due_after_filter(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(OWNER, CardFilter(due_after=NOW))
        assert [c.id for c in cards] == _ids(named_cards, "due_now", "future")

    def test_topic_filter(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(OWNER, CardFilter(topic_id="math", due_before=NOW))
        assert [c.id for c in cards] == _ids(named_cards, "overdue_3d", "due_now")

    def test_min_mastery_filter(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(OWNER, CardFilter(min_mastery=0.8))
        assert [c.id for c in cards] == _ids(named_cards, "future")

    def test_limit_keeps_highest_priority(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(OWNER, CardFilter(due_before=NOW, limit=2))
        assert [c.id for c in cards] == _ids(named_cards, "overdue_3d", "overdue_1d")

    def test_limit_zero_returns_nothing(self, populated_db: StudyDatabase, named_cards):
        assert populated_db.list_cards(OWNER, CardFilter(limit=0)) == []

    def test_priority_order_serves_unreviewed_then_weakest(self, populated_db: StudyDatabase, named_cards):
        cards = populated_db.list_cards(
            OWNER, CardFilter(due_before=NOW, order=DueOrder.PRIORITY)
        )
        assert [c.id for c in cards] == _ids(named_cards, "due_now", "overdue_1d", "overdue_3d")

    def test_count_cards(self, populated_db: StudyDatabase, named_cards):
        assert populated_db.count_cards(OWNER) == 4
        assert populated_db.count_cards(OWNER, CardFilter(due_before=NOW)) == 3
        assert populated_db.count_cards(OWNER, CardFilter(due_before=NOW, limit=1)) == 3
        assert populated_db.count_cards(OTHER_OWNER) == 1
        assert populated_db.count_cards("nobody") == 0


class TestReviewLog:
    @pytest.fixture
    def card(self, initialized_db: StudyDatabase, make_card) -> Card:
        card = make_card()
        initialized_db.add_cards([card])
        return card

    def test_append_and_list_reviews(self, initialized_db: StudyDatabase, card: Card):
        later = _event(card, 5, NOW)
        earlier = _event(card, 2, NOW - timedelta(days=1))
        initialized_db.append_review(later)
        initialized_db.append_review(earlier)

        events = initialized_db.list_reviews(OWNER)

        assert events == [earlier, later]
        assert events[0].reviewed_at.tzinfo == UTC

    def test_append_review_is_idempotent(self, initialized_db: StudyDatabase, card: Card):
        event = _event(card, 4, NOW)
        initialized_db.append_review(event)
        initialized_db.append_review(event)

        assert initialized_db.count_reviews(OWNER) == 1

    def test_review_filters(self, initialized_db: StudyDatabase, card: Card, make_card):
        other_card = make_card()
        initialized_db.add_cards([other_card])
        events = [
            _event(card, 1, NOW - timedelta(days=3)),
            _event(card, 4, NOW - timedelta(days=1)),
            _event(other_card, 5, NOW),
            _event(card, 5, NOW, owner=OTHER_OWNER),
        ]
        for event in events:
            initialized_db.append_review(event)

        assert initialized_db.count_reviews(OWNER) == 3
        assert initialized_db.list_reviews(OWNER, ReviewFilter(card_id=card.id)) == events[:2]
        assert initialized_db.list_reviews(
            OWNER, ReviewFilter(start_ts=NOW - timedelta(days=2))
        ) == events[1:3]
        assert initialized_db.list_reviews(
            OWNER, ReviewFilter(end_ts=NOW - timedelta(days=1))
        ) == events[:2]
        assert initialized_db.count_reviews(OWNER, ReviewFilter(min_rating=4)) == 2

    def test_list_reviews_empty(self, initialized_db: StudyDatabase):
        assert initialized_db.list_reviews(OWNER) == []
        assert initialized_db.count_reviews(OWNER) == 0

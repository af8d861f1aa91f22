import pytest
from datetime import timedelta

from recallcore.db import StudyDatabase
from recallcore.due_selector import DueSetSelector, recommended_batch_size
from recallcore.models import DueOrder

from .conftest import NOW, OTHER_OWNER, OWNER


@pytest.fixture
def selector(initialized_db: StudyDatabase) -> DueSetSelector:
    return DueSetSelector(initialized_db)


@pytest.mark.parametrize(
    "due_count, expected",
    [
        (0, 0),
        (1, 1),
        (5, 5),
        (6, 5),
        (8, 6),
        (10, 7),
        (20, 15),
        (21, 20),
        (50, 20),
        (51, 25),
        (500, 25),
    ],
)
def test_recommended_batch_size(due_count, expected):
    assert recommended_batch_size(due_count) == expected


def test_recommended_batch_size_rejects_negative_count():
    with pytest.raises(ValueError):
        recommended_batch_size(-1)


def test_limit_returns_most_overdue_cards(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    cards = [make_card(timedelta(days=-day)) for day in range(1, 11)]
    initialized_db.add_cards(cards)

    due = selector.get_due_cards(OWNER, limit=3, now=NOW)

    # Ten days overdue first.
    assert [c.id for c in due] == [cards[9].id, cards[8].id, cards[7].id]


def test_future_and_foreign_cards_are_excluded(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    due_card = make_card(timedelta(hours=-1))
    initialized_db.add_cards(
        [
            due_card,
            make_card(timedelta(hours=1)),
            make_card(timedelta(days=-3), owner_id=OTHER_OWNER),
        ]
    )

    assert [c.id for c in selector.get_due_cards(OWNER, now=NOW)] == [due_card.id]
    assert selector.get_due_count(OWNER, now=NOW) == 1


def test_card_due_exactly_now_is_selected(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    card = make_card(timedelta(0))
    initialized_db.add_cards([card])

    assert [c.id for c in selector.get_due_cards(OWNER, now=NOW)] == [card.id]


def test_topic_filter(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    math_card = make_card(timedelta(days=-1), topic_id="math")
    initialized_db.add_cards([math_card, make_card(timedelta(days=-2), topic_id="art")])

    due = selector.get_due_cards(OWNER, topic_id="math", now=NOW)

    assert [c.id for c in due] == [math_card.id]
    assert selector.get_due_count(OWNER, topic_id="art", now=NOW) == 1


def test_priority_order_serves_weakest_retention_first(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    strong = make_card(timedelta(days=-5), last_retention=0.9)
    weak = make_card(timedelta(days=-1), last_retention=0.3)
    unseen = make_card(timedelta(hours=-2))
    initialized_db.add_cards([strong, weak, unseen])

    priority = selector.get_priority_cards(OWNER, now=NOW)
    overdue = selector.get_due_cards(OWNER, order=DueOrder.OVERDUE, now=NOW)

    assert [c.id for c in priority] == [unseen.id, weak.id, strong.id]
    assert [c.id for c in overdue] == [strong.id, weak.id, unseen.id]


def test_limit_zero_and_negative(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    initialized_db.add_cards([make_card(timedelta(days=-1))])

    assert selector.get_due_cards(OWNER, limit=0, now=NOW) == []
    with pytest.raises(ValueError, match="Invalid limit"):
        selector.get_due_cards(OWNER, limit=-1, now=NOW)


def test_no_limit_returns_everything_due(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    initialized_db.add_cards(
        [make_card(timedelta(minutes=-m)) for m in range(1, 31)]
    )

    assert len(selector.get_due_cards(OWNER, limit=None, now=NOW)) == 30
    assert len(selector.get_due_cards(OWNER, now=NOW)) == 20


def test_study_batch_uses_recommended_size(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    cards = [make_card(timedelta(minutes=-m)) for m in range(1, 11)]
    initialized_db.add_cards(cards)

    batch = selector.get_study_batch(OWNER, now=NOW)

    assert len(batch) == 7
    assert batch[0].id == cards[-1].id


def test_empty_owner_has_nothing_due(selector: DueSetSelector):
    assert selector.get_due_cards(OWNER, now=NOW) == []
    assert selector.get_due_count(OWNER, now=NOW) == 0
    assert selector.get_study_batch(OWNER, now=NOW) == []


def test_struggling_cards_are_hardest_first(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    hard = make_card(difficulty=5.0, due_in=timedelta(days=10))
    harder_due = make_card(difficulty=4.5)
    borderline = make_card(difficulty=4.0, topic_id="bio")
    easy = make_card(difficulty=2.0)
    foreign = make_card(owner_id=OTHER_OWNER, difficulty=5.0)
    initialized_db.add_cards([hard, harder_due, borderline, easy, foreign])

    struggling = selector.get_struggling_cards(OWNER)

    assert [c.id for c in struggling] == [hard.id, harder_due.id, borderline.id]
    assert [c.id for c in selector.get_struggling_cards(OWNER, limit=1)] == [hard.id]
    assert [
        c.id for c in selector.get_struggling_cards(OWNER, topic_id="bio")
    ] == [borderline.id]
    assert [
        c.id for c in selector.get_struggling_cards(OWNER, min_difficulty=4.8)
    ] == [hard.id]


def test_mastered_cards_are_best_first(
    initialized_db: StudyDatabase, selector: DueSetSelector, make_card
):
    solid = make_card(mastery_level=0.85)
    best = make_card(mastery_level=0.95, due_in=timedelta(days=30))
    learning = make_card(mastery_level=0.5)
    initialized_db.add_cards([solid, best, learning])

    assert [c.id for c in selector.get_mastered_cards(OWNER)] == [best.id, solid.id]
    assert [
        c.id for c in selector.get_mastered_cards(OWNER, min_mastery=0.4)
    ] == [best.id, solid.id, learning.id]
    assert selector.get_mastered_cards(OWNER, limit=0) == []
    with pytest.raises(ValueError, match="Invalid limit"):
        selector.get_mastered_cards(OWNER, limit=-1)
    with pytest.raises(ValueError, match="Invalid limit"):
        selector.get_struggling_cards(OWNER, limit=-1)

import logging
import pytest
from pathlib import Path
from typing import Callable, Generator
from datetime import datetime, timedelta, timezone

from recallcore.config import get_settings
from recallcore.models import Card
from recallcore.db import StudyDatabase


OWNER = "learner-1"
OTHER_OWNER = "learner-2"
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


# each test runs on cwd to its temp dir
@pytest.fixture(autouse=True)
def go_to_tmpdir(request):
    """
    Run each test inside its own tmpdir so no stray ``.env`` file is picked
    up by the settings, and start every test with fresh settings.
    """
    tmpdir = request.getfixturevalue("tmpdir")
    get_settings.cache_clear()
    with tmpdir.as_cwd():
        yield
    get_settings.cache_clear()


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    return tmp_path / "test_recall.db"


@pytest.fixture(params=["memory", "file"])
def study_db(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[StudyDatabase, None, None]:
    """
    Provide a StudyDatabase, either in-memory or file-backed, and close it on
    teardown.
    """
    if request.param == "memory":
        db = StudyDatabase(db_path_memory)
    else:
        db = StudyDatabase(db_path_file)
    try:
        yield db
    finally:
        db.close_connection()
        if request.param == "file" and db_path_file.exists():
            try:
                db_path_file.unlink()
            except OSError as e:
                logging.warning(
                    f"Error removing temporary DB file in test fixture teardown: {e}"
                )


@pytest.fixture
def initialized_db(study_db: StudyDatabase) -> StudyDatabase:
    study_db.initialize_schema()
    return study_db


@pytest.fixture
def make_card() -> Callable[..., Card]:
    """
    Factory for cards owned by ``OWNER``. ``due_in`` is the offset of
    ``next_review_at`` from ``NOW``.
    """

    def _make(due_in: timedelta = timedelta(0), **overrides) -> Card:
        fields = {
            "owner_id": OWNER,
            "front": "Question",
            "back": "Answer",
            "created_at": NOW - timedelta(days=30),
            "next_review_at": NOW + due_in,
        }
        fields.update(overrides)
        return Card(**fields)

    return _make

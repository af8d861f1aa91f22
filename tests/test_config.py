from pathlib import Path

import pytest
from pydantic import ValidationError

from recallcore.config import Settings, get_default_db_path, get_settings
from recallcore.models import RatingConvention


def test_defaults(monkeypatch):
    for name in ("RECALLCORE_DB_PATH", "RECALLCORE_OWNER_ID", "RECALLCORE_RATING_CONVENTION"):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.db_path == get_default_db_path()
    assert settings.owner_id == "local"
    assert settings.rating_convention == RatingConvention.RECALL
    assert settings.due_limit == 20
    assert settings.minutes_per_card == 2
    assert not settings.testing_mode


def test_environment_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("RECALLCORE_DB_PATH", str(tmp_path / "custom.db"))
    monkeypatch.setenv("RECALLCORE_RATING_CONVENTION", "difficulty")
    monkeypatch.setenv("RECALLCORE_DUE_LIMIT", "5")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.db_path == tmp_path / "custom.db"
    assert settings.rating_convention == RatingConvention.DIFFICULTY
    assert settings.due_limit == 5


def test_dotenv_file_in_working_directory(tmp_path: Path):
    # The autouse fixture runs every test inside its own tmpdir.
    Path(".env").write_text("RECALLCORE_OWNER_ID=from-dotenv\n", encoding="utf-8")

    assert Settings().owner_id == "from-dotenv"


def test_settings_are_cached():
    assert get_settings() is get_settings()


def test_invalid_values_are_rejected(monkeypatch):
    monkeypatch.setenv("RECALLCORE_DUE_LIMIT", "0")

    with pytest.raises(ValidationError):
        Settings()

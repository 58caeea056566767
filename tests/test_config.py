import os
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from screentime.core.config import AppSettings


def test_list_settings_accept_comma_separated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ADMIN_EMAILS", "Boss@Example.com, ops@example.com ,")
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:3000,https://board.example.com")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    config = AppSettings()

    assert config.ADMIN_EMAILS == ["boss@example.com", "ops@example.com"]
    assert config.ALLOWED_ORIGINS == ["http://localhost:3000", "https://board.example.com"]


def test_database_url_defaults_to_sqlite_in_data_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("DB_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    assert AppSettings().database_url == f"sqlite:///{tmp_path / 'leaderboard.db'}"

    monkeypatch.setenv("DATABASE_URL", "postgresql://board@db/board")
    assert AppSettings().database_url == "postgresql://board@db/board"


def test_leaderboard_order_is_validated(monkeypatch):
    monkeypatch.setenv("LEADERBOARD_ORDER", " DESC ")
    assert AppSettings().LEADERBOARD_ORDER == "desc"

    monkeypatch.setenv("LEADERBOARD_ORDER", "sideways")
    with pytest.raises(ValidationError):
        AppSettings()


def test_settings_expose_only_the_leaderboard_fields(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    config = AppSettings()

    assert "BASE_DIR" not in AppSettings.model_fields
    assert config.DATA_DIR == tmp_path

# tests/test_config.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from taskcal.config import DEFAULT_HOLIDAYS_URL, Settings


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in list(os.environ):
        if name.startswith("TASKCAL_"):
            monkeypatch.delenv(name)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = Settings.from_env()

    assert s.user_id == "local"
    assert s.tasks_db_path == Path(".local/taskcal") / "tasks.sqlite3"
    assert s.propose_lookahead_days == 10
    assert s.remote_weekdays == (2, 4)
    assert s.holidays_enabled is False
    assert s.holidays_url == DEFAULT_HOLIDAYS_URL


def test_overrides(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("TASKCAL_DATA_DIR", str(tmp_path))
    clean_env.setenv("TASKCAL_USER_ID", "alice")
    clean_env.setenv("TASKCAL_PROPOSE_LOOKAHEAD_DAYS", "0")
    clean_env.setenv("TASKCAL_REMOTE_WEEKDAYS", "0, 9,3")
    clean_env.setenv("TASKCAL_HOLIDAYS_ENABLED", "yes")

    s = Settings.from_env()

    assert s.user_id == "alice"
    assert s.workdays_db_path == tmp_path / "workdays.sqlite3"
    assert s.propose_lookahead_days == 1
    assert s.remote_weekdays == (0, 3)
    assert s.holidays_enabled is True

# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskcal.cli.bootstrap import create_initial_state
from taskcal.core.state import AppState
from taskcal.tasks.task_store import TaskStore
from taskcal.workdays.workday_store import WorkdayStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    A SimpleNamespace rather than the real config keeps tests independent
    of the environment and of any local .env file.
    """
    return SimpleNamespace(
        app_name="taskcal-test",
        log_level="DEBUG",
        user_id="u1",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        workdays_db_path=tmp_path / "workdays.sqlite3",
        # Planning
        propose_lookahead_days=10,
        remote_weekdays=(2, 4),
        # No network in tests
        holidays_enabled=False,
    )


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3")


@pytest.fixture()
def workday_store(tmp_path: Path) -> WorkdayStore:
    return WorkdayStore(tmp_path / "workdays.sqlite3")


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """AppState wired by the real bootstrap, on SQLite files under tmp_path."""
    return create_initial_state(settings=settings)

# src/taskcal/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing is read from disk or network at import time except the optional .env.
- Every consumer accepts an injected settings object (tests pass a SimpleNamespace).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKCAL"

DEFAULT_HOLIDAYS_URL = "https://calendrier.api.gouv.fr/jours-feries/metropole/{year}.json"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int_tuple(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    out: list[int] = []
    for part in raw.replace(",", " ").split():
        try:
            out.append(int(part))
        except ValueError:
            continue
    return tuple(out)


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Session ----
    user_id: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    workdays_db_path: Path

    # ---- Work-mode planning ----
    propose_lookahead_days: int
    # Weekday numbers as in date.weekday(): Monday=0 ... Sunday=6.
    remote_weekdays: tuple[int, ...]

    # ---- Public holidays ----
    holidays_enabled: bool
    holidays_url: str
    holidays_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskcal") or "taskcal"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        user_id = _env(_k("USER_ID"), "local").strip() or "local"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskcal"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        workdays_db_path = _env_path(_k("WORKDAYS_DB_PATH"), data_dir / "workdays.sqlite3")

        propose_lookahead_days = max(1, _env_int(_k("PROPOSE_LOOKAHEAD_DAYS"), 10))
        remote_weekdays = tuple(
            d for d in _env_int_tuple(_k("REMOTE_WEEKDAYS"), (2, 4)) if 0 <= d <= 6
        )

        holidays_enabled = _env_bool(_k("HOLIDAYS_ENABLED"), False)
        holidays_url = _env(_k("HOLIDAYS_URL"), DEFAULT_HOLIDAYS_URL).strip() or DEFAULT_HOLIDAYS_URL
        holidays_timeout_seconds = _env_float(_k("HOLIDAYS_TIMEOUT_SECONDS"), 5.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            user_id=user_id,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            workdays_db_path=workdays_db_path,
            propose_lookahead_days=propose_lookahead_days,
            remote_weekdays=remote_weekdays,
            holidays_enabled=holidays_enabled,
            holidays_url=holidays_url,
            holidays_timeout_seconds=holidays_timeout_seconds,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS

# src/daybook/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole engine.
- Nothing required at import time; every variable has a default.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "DAYBOOK"

logger = logging.getLogger(__name__)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Calendar ----
    # IANA zone name for "today" and for aware timestamps; empty = system local zone.
    timezone: str

    # ---- View behaviour ----
    grace_window_seconds: float
    collapse_debounce_seconds: float
    hide_completed: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "daybook") or "daybook"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/daybook"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "daybook.sqlite3")

        timezone = _env(_k("TIMEZONE"), "").strip()

        grace_window_seconds = max(0.0, _env_float(_k("GRACE_WINDOW_SECONDS"), 2.0))
        collapse_debounce_seconds = max(0.0, _env_float(_k("COLLAPSE_DEBOUNCE_SECONDS"), 0.05))
        hide_completed = _env_bool(_k("HIDE_COMPLETED"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            timezone=timezone,
            grace_window_seconds=grace_window_seconds,
            collapse_debounce_seconds=collapse_debounce_seconds,
            hide_completed=hide_completed,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS

# src/daybook/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

from .config import Settings

# Loggers whose DEBUG/INFO output is per-write or per-timer chatter.
_CHATTY = {
    "daybook.tasks.task_store": logging.INFO,
    "daybook.completions.completion_store": logging.INFO,
    "daybook.core.keyed_lock": logging.WARNING,
    "daybook.schedule.grace_window": logging.INFO,
}

# Marks handlers installed here so a second call replaces only those.
_HANDLER_TAG = "_daybook_handler"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console shows engine decisions, not storage traffic:
    - daybook loggers pass, except the chatty ones below their threshold
    - everything else (third-party, captured py.warnings) only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == "daybook" or name.startswith("daybook."):
            return record.levelno >= _CHATTY.get(name, logging.NOTSET)
        return record.levelno >= logging.ERROR


def _level(name: str | int, default: int = logging.INFO) -> int:
    if isinstance(name, int):
        return name
    level = logging.getLevelName(str(name).strip().upper())
    if isinstance(level, int):
        return level
    logging.getLogger(__name__).warning("Unknown log level %r; using %s", name, logging.getLevelName(default))
    return default


def setup_logging(settings: Settings, *, file_level: int = logging.DEBUG) -> Path:
    """
    Install a filtered console handler (settings.log_level) and a full log file
    under settings.data_dir. Returns the log file path.

    Safe to call again: handlers from an earlier call are replaced, handlers
    installed by anyone else are left alone.
    """
    log_dir = Path(settings.data_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{settings.app_name or 'daybook'}.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_level(settings.log_level))
    console.addFilter(_ConsoleNoiseFilter())

    file = logging.FileHandler(str(log_file), encoding="utf-8")
    file.setLevel(file_level)

    for h in (console, file):
        h.setFormatter(fmt)
        setattr(h, _HANDLER_TAG, True)
        root.addHandler(h)

    logging.captureWarnings(True)
    return log_file

"""Logging setup for gymsync.

Two log streams live under ``<data dir>/logs``:

- ``local-YYYY-MM-DD.log``: the ``gymsync`` logger hierarchy
- ``sync-events-YYYY-MM-DD.log``: one line per sync event (pull, push,
  migration, dedup) for after-the-fact debugging of a user's device
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from gymsync.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir() -> Path:
    path = get_settings().resolved_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_gymsync_logging(user_id: str = "default", level: str = "INFO") -> logging.Logger:
    """Configure the ``gymsync`` logger with a dated file handler.

    Calling this more than once is safe: handlers are only added the first
    time. A console handler is added at DEBUG level.
    """
    logger = logging.getLogger("gymsync")
    resolved = getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return logger

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = logging.FileHandler(_log_dir() / f"local-{_today()}.log", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if resolved == logging.DEBUG:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.debug(f"Logging configured for user={user_id}")
    return logger


def log_sync_event(event_type: str, details: str, user_id: Optional[str] = None) -> None:
    """Append a single sync event line to today's event log."""
    timestamp = datetime.now(timezone.utc).isoformat()
    line = f"{timestamp} | {event_type} | user={user_id or 'default'} | {details}\n"
    with open(_log_dir() / f"sync-events-{_today()}.log", "a", encoding="utf-8") as f:
        f.write(line)


def log_sync(user_id: Optional[str], direction: str, count: int, errors: int = 0) -> None:
    """Record a pull or push batch."""
    log_sync_event("sync", f"direction={direction}, count={count}, errors={errors}", user_id)


def log_migration(
    user_id: Optional[str], templates: int = 0, sessions: int = 0, exercises: int = 0
) -> None:
    """Record how many identifiers the migrator rewrote."""
    log_sync_event(
        "migration",
        f"templates={templates}, sessions={sessions}, exercises={exercises}",
        user_id,
    )


def log_dedup(user_id: Optional[str], fixed: int, error: Optional[str] = None) -> None:
    """Record the outcome of the one-time dedup repair."""
    details = f"fixed={fixed}"
    if error:
        details += f", error={error}"
    log_sync_event("dedup", details, user_id)

"""Logging for inbox-rules.

Two rotating files are written to the configured log directory:
- inbox-rules.log: rule, plan and execution activity, one line per event,
  tagged with the user it concerns
- inbox-rules-error.log: ERROR+ records from the whole package

Activity for a user goes through ``get_user_logger``, which returns an
adapter over one shared logger, so the number of open files does not grow
with the number of users.

Usage:
    from inbox_rules.logging import setup_logging, get_user_logger

    setup_logging(settings.log_dir, settings.log_level)

    log = get_user_logger(user.id)
    log.info("Matched rule %s", rule.name)
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / ".local" / "state" / "inbox-rules" / "logs"

DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_BACKUP_COUNT = 3

PACKAGE_LOGGER = "inbox_rules"
ACTIVITY_LOGGER = "inbox_rules.activity"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(user_id)s] %(name)s: %(message)s"

# Handlers installed by setup_logging, removed by reset_logging
_handlers: list[logging.Handler] = []


class UserContextFilter(logging.Filter):
    """Give records without a user a placeholder so the format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "user_id"):
            record.user_id = "-"
        return True


class UserLogger(logging.LoggerAdapter):
    """Activity logger bound to one user id."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def _rotating_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(UserContextFilter())
    return handler


def setup_logging(
    log_dir: Path | None = None,
    log_level: str = "INFO",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> None:
    """Initialize the logging system.

    Calling it again replaces the handlers from the previous call.

    Args:
        log_dir: Directory for log files.
        log_level: Minimum level for the package logger.
        max_bytes: Max size per log file before rotation (default: 5MB).
        backup_count: Number of backup files to keep (default: 3).
    """
    reset_logging()

    log_dir = log_dir or DEFAULT_LOG_DIR
    max_bytes = max_bytes or DEFAULT_MAX_BYTES
    backup_count = backup_count if backup_count is not None else DEFAULT_BACKUP_COUNT
    log_dir.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    _handlers.extend([
        _rotating_handler(log_dir / "inbox-rules.log", logging.NOTSET, max_bytes, backup_count),
        _rotating_handler(log_dir / "inbox-rules-error.log", logging.ERROR, max_bytes, backup_count),
    ])
    for handler in _handlers:
        package_logger.addHandler(handler)


def get_user_logger(user_id: str) -> UserLogger:
    """Activity logger for one user.

    Args:
        user_id: Identifier of the mailbox owner.

    Returns:
        Adapter that tags every record with ``user_id``.
    """
    return UserLogger(logging.getLogger(ACTIVITY_LOGGER), {"user_id": user_id})


def reset_logging() -> None:
    """Remove and close the handlers installed by ``setup_logging``."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in _handlers:
        package_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

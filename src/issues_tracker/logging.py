"""Structured JSON logging for issues-tracker.

Writes JSONL to ``<log_dir>/issues-tracker.log`` with rotation (5MB, 3
backups), or to stderr when no log directory is configured.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_FILENAME = "issues-tracker.log"
_LOGGER_NAME = "issues_tracker"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# Record attributes copied verbatim into the JSON line when present.
_EXTRA_FIELDS = ("tool", "duration_ms", "error", "method", "path", "status", "session_id")


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)
        if hasattr(record, "args_data"):
            entry["args"] = record.args_data
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def _is_stderr_handler(h: logging.Handler) -> bool:
    return type(h) is logging.StreamHandler and getattr(h, "stream", None) is sys.stderr


def setup_logging(log_dir: Path | None = None, *, level: int = logging.INFO) -> logging.Logger:
    """Attach a JSON handler to the ``issues_tracker`` logger.

    With *log_dir* the handler is a rotating file; otherwise stderr.
    Idempotent: calling again with the same target is a no-op, and a new
    target replaces the previous handler.
    """
    logger = logging.getLogger(_LOGGER_NAME)

    with _setup_lock:
        if log_dir is None:
            for h in logger.handlers[:]:
                if _is_stderr_handler(h):
                    return logger
                if isinstance(h, RotatingFileHandler):
                    logger.removeHandler(h)
                    h.close()
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
        else:
            log_path = log_dir / _LOG_FILENAME
            target_filename = os.path.abspath(str(log_path))
            for h in logger.handlers[:]:
                if isinstance(h, RotatingFileHandler):
                    if h.baseFilename == target_filename:
                        return logger
                    # Different path: replace the stale handler.
                    logger.removeHandler(h)
                    h.close()
                elif _is_stderr_handler(h):
                    logger.removeHandler(h)
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                str(log_path),
                maxBytes=_MAX_BYTES,
                backupCount=_BACKUP_COUNT,
            )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger

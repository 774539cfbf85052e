from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


# Log rotation settings (configurable via environment)
MAX_LOG_BYTES = int(os.getenv("WFO_LOG_MAX_BYTES", 10 * 1024 * 1024))  # 10MB default
LOG_BACKUP_COUNT = int(os.getenv("WFO_LOG_BACKUP_COUNT", 5))

_console = logging.getLogger("structured")
_lock = threading.Lock()
_log_dir: Optional[Path] = None
_file_handler: RotatingFileHandler | None = None


def get_log_dir() -> Path:
    """Directory holding events.jsonl (WFO_LOG_DIR, default logs/)."""
    if _log_dir is not None:
        return _log_dir
    return Path(os.getenv("WFO_LOG_DIR", "logs"))


def get_log_file() -> Path:
    return get_log_dir() / "events.jsonl"


def configure_log_dir(path: str | Path | None) -> None:
    """Redirect structured logs; None restores the environment default."""
    global _log_dir, _file_handler
    with _lock:
        if _file_handler is not None:
            _file_handler.close()
        _file_handler = None
        _log_dir = Path(path) if path is not None else None


def _get_file_handler() -> RotatingFileHandler:
    """Get or create the rotating file handler."""
    global _file_handler
    if _file_handler is None:
        log_file = get_log_file()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    return _file_handler


def jlog(event: str, level: str = "INFO", **fields: Any) -> None:
    """
    Write a structured JSON log entry with automatic rotation.

    Args:
        event: Event name/type
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **fields: Additional fields to include in the log entry
    """
    rec: Dict[str, Any] = {
        "ts": datetime.utcnow().isoformat(),
        "level": level,
        "event": event,
        **fields,
    }
    line = json.dumps(rec, default=str)

    with _lock:
        handler = _get_file_handler()
        try:
            handler.stream.write(line + "\n")
            handler.stream.flush()

            if handler.shouldRollover(logging.LogRecord(
                name="wfo", level=logging.INFO, pathname="", lineno=0,
                msg=line, args=(), exc_info=None
            )):
                handler.doRollover()
        except (OSError, ValueError):
            # Fallback to direct file write if handler fails
            with get_log_file().open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    # Also echo concise line to console
    level_no = logging.getLevelName(level.upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO
    _console.log(level_no, "%s | %s", event, fields)


def read_recent_logs(count: int = 100, level: str | None = None) -> list[Dict[str, Any]]:
    """
    Read the most recent log entries.

    Args:
        count: Maximum number of entries to return
        level: Optional filter by log level

    Returns:
        List of log entries (most recent last)
    """
    entries: list[Dict[str, Any]] = []
    log_file = get_log_file()

    if not log_file.exists():
        return entries

    with log_file.open("r", encoding="utf-8") as f:
        lines = f.readlines()

    # Read from end for efficiency
    for line in reversed(lines):
        if len(entries) >= count:
            break
        try:
            entry = json.loads(line.strip())
        except json.JSONDecodeError:
            continue
        if level is None or entry.get("level") == level:
            entries.append(entry)

    # Return in chronological order
    return list(reversed(entries))

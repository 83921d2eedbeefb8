"""
polytext Logging — Structured JSON file logging for translation events.

Implements:
- FileLogger: Per-object-type, per-category log files (daily rotation)
- Log entry builders for translation writes, deferred replays and queries
- A module-level sink enabled from the ``logging:`` section of translatable.yaml

Plain diagnostics still go through ``logging.getLogger("polytext.…")``;
this module adds the machine-readable JSONL trail next to them.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("polytext.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "translations": ["execution", "performance"],
    "queries": ["execution", "performance"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.
    Files rotate daily: logs/{object_type}/{category}/{YYYY-MM-DD}.jsonl

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create the directory tree for all object types and categories."""
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        file_path = self._resolve_path(entry.object_type, entry.category)

        with self._file_locks[str(file_path)]:
            with open(file_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json())
                f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        """Resolve the log file path for today's date."""
        if category not in OBJECT_TYPE_CATEGORIES.get(object_type, ()):
            raise ValueError(f"Invalid log target: {object_type}/{category}")
        return self._log_dir / object_type / category / f"{date.today().isoformat()}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **extra: Any) -> Dict[str, Any]:
    """Build a base log entry with common fields."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def log_translation_write(
    operation: str,
    owner_type: str,
    owner_id: Any,
    key: str,
    locale: str,
    duration_ms: Optional[float] = None,
) -> LogEntry:
    """Build a translation write entry (operation: upsert | delete)."""
    data = _base_entry(
        event=f"translation_{operation}",
        level="INFO",
        owner_type=owner_type,
        owner_id=owner_id,
        key=key,
        locale=locale,
        duration_ms=duration_ms,
    )
    return LogEntry("translations", "execution", data)


def log_translation_replay(
    owner_type: str,
    owner_id: Any,
    token: str,
    count: int,
) -> LogEntry:
    """Build an entry for deferred writes replayed after an owner insert."""
    data = _base_entry(
        event="translation_replay",
        level="INFO",
        owner_type=owner_type,
        owner_id=owner_id,
        token=token,
        count=count,
    )
    return LogEntry("translations", "execution", data)


def log_query_event(
    event: str,
    owner_type: str,
    locales: List[str],
    duration_ms: float,
    row_count: Optional[int] = None,
    keys: Optional[List[str]] = None,
) -> LogEntry:
    """Build a translation query performance entry."""
    data = _base_entry(
        event=event,
        level="INFO",
        owner_type=owner_type,
        locales=locales,
        keys=keys,
        duration_ms=round(duration_ms, 3),
        row_count=row_count,
    )
    return LogEntry("queries", "performance", data)


# ---------------------------------------------------------------------------
# Module-level sink
# ---------------------------------------------------------------------------

_file_logger: Optional[FileLogger] = None


def configure_structured_logging(logging_config: Any) -> Optional[FileLogger]:
    """
    Apply the ``logging:`` config section: set the polytext logger level and
    enable the JSONL sink when ``structured`` is true.
    """
    global _file_logger
    logging.getLogger("polytext").setLevel(logging_config.level)
    if logging_config.structured:
        _file_logger = FileLogger(log_dir=logging_config.directory)
        logger.info(f"Structured translation logging enabled: {logging_config.directory}")
    else:
        _file_logger = None
    return _file_logger


def get_file_logger() -> Optional[FileLogger]:
    """The active JSONL sink, or None when structured logging is off."""
    return _file_logger


def set_file_logger(file_logger: Optional[FileLogger]) -> None:
    """Install (or with None, remove) the JSONL sink."""
    global _file_logger
    _file_logger = file_logger


def emit(entry: LogEntry) -> None:
    """Write an entry to the JSONL sink if one is configured."""
    if _file_logger is None:
        return
    try:
        _file_logger.write(entry)
    except OSError as e:
        logger.error(f"Structured log write failed: {e}")

"""Data models and persistent storage for schedules."""

import json
import logging
import os
import threading
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from tele_reminder.delivery.dispatcher import ParseMode

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("last_run_at", "last_sent_at", "created_at", "updated_at")


class RunStatus(str, Enum):
    """Outcome of the most recent send attempt."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Schedule:
    """A persisted reminder schedule."""
    id: int
    name: str
    cron_expression: str  # e.g. "0 18 * * *"
    timezone: str  # IANA name, e.g. "Asia/Phnom_Penh"
    message: str
    parse_mode: ParseMode = ParseMode.HTML
    is_active: bool = True
    last_run_at: Optional[datetime] = None
    last_sent_at: Optional[datetime] = None
    last_status: Optional[RunStatus] = None
    last_error: Optional[str] = None
    failure_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["parse_mode"] = self.parse_mode.value
        data["last_status"] = self.last_status.value if self.last_status else None
        for key in TIMESTAMP_FIELDS:
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Schedule":
        """Create from dictionary."""
        values = dict(data)
        values["parse_mode"] = ParseMode(values.get("parse_mode") or ParseMode.HTML.value)
        if values.get("last_status"):
            values["last_status"] = RunStatus(values["last_status"])
        for key in TIMESTAMP_FIELDS:
            if values.get(key):
                values[key] = datetime.fromisoformat(values[key])
        return cls(**values)


class ScheduleStore:
    """Persistent storage for schedules.

    Every public method runs under one lock and writes through to disk
    before returning. Callers get copies, never the stored instances.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._schedules: dict[int, Schedule] = {}
        self._next_id = 1
        self._lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        """Load schedules from disk."""
        if not self.filepath.exists():
            return
        try:
            data = json.loads(self.filepath.read_text(encoding="utf-8"))
            for item in data.get("schedules", []):
                schedule = Schedule.from_dict(item)
                self._schedules[schedule.id] = schedule
            stored_next_id = int(data.get("next_id", 1))
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"Failed to load schedules from {self.filepath}: {e}")
            self._schedules = {}
            return
        # ids are never reused, even after the newest schedule was deleted
        self._next_id = max(stored_next_id, max(self._schedules, default=0) + 1)

    def _save(self) -> None:
        """Save schedules to disk.

        Synchronous and under the lock, so outcome writes from a tick block the
        event loop for one small file write. Fine for tens of schedules.
        """
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "next_id": self._next_id,
            "schedules": [s.to_dict() for s in self._schedules.values()],
        }
        tmp_path = self.filepath.with_suffix(self.filepath.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.filepath)

    def check(self) -> None:
        """Raise OSError or ValueError if the file is unreadable or its directory unwritable."""
        with self._lock:
            if self.filepath.exists():
                json.loads(self.filepath.read_text(encoding="utf-8"))
            directory = self.filepath.parent
            directory.mkdir(parents=True, exist_ok=True)
            if not os.access(directory, os.W_OK):
                raise PermissionError(f"{directory} is not writable")

    def insert(self, fields: dict[str, Any]) -> Schedule:
        """Add a new schedule and assign its id."""
        with self._lock:
            now = utcnow()
            schedule = Schedule(
                id=self._next_id,
                **fields,
                created_at=now,
                updated_at=now,
            )
            self._schedules[schedule.id] = schedule
            self._next_id += 1
            self._save()
            return replace(schedule)

    def get(self, schedule_id: int) -> Optional[Schedule]:
        """Get a schedule by ID."""
        with self._lock:
            schedule = self._schedules.get(schedule_id)
            return replace(schedule) if schedule else None

    def list_all(self) -> list[Schedule]:
        """Get all schedules, newest first."""
        with self._lock:
            ordered = sorted(
                self._schedules.values(),
                key=lambda s: (s.created_at, s.id),
                reverse=True,
            )
            return [replace(s) for s in ordered]

    def update(
        self,
        schedule_id: int,
        fields: dict[str, Any],
        increments: Optional[dict[str, int]] = None,
    ) -> Optional[Schedule]:
        """Apply a partial update atomically. Returns None if not found.

        Args:
            schedule_id: Schedule to update.
            fields: Attribute values to set.
            increments: Integer attributes to add to, applied in the same step.
        """
        with self._lock:
            current = self._schedules.get(schedule_id)
            if current is None:
                return None

            values = dict(fields)
            for key, delta in (increments or {}).items():
                values[key] = getattr(current, key) + delta
            values.setdefault("updated_at", utcnow())

            updated = replace(current, **values)
            self._schedules[schedule_id] = updated
            self._save()
            return replace(updated)

    def delete(self, schedule_id: int) -> bool:
        """Remove a schedule by ID."""
        with self._lock:
            if self._schedules.pop(schedule_id, None) is None:
                return False
            self._save()
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._schedules)

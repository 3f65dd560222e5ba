"""Scheduler module for cron-based reminder delivery."""

from .models import RunStatus, Schedule, ScheduleStore
from .recorder import OutcomeRecorder
from .engine import CronEngine
from .service import ScheduleService

__all__ = [
    "RunStatus",
    "Schedule",
    "ScheduleStore",
    "OutcomeRecorder",
    "CronEngine",
    "ScheduleService",
]

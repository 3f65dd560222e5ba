"""Writes dispatch outcomes back onto schedules."""

import logging
from datetime import datetime
from typing import Callable, Optional

from tele_reminder.delivery.dispatcher import DispatchOutcome
from .models import RunStatus, Schedule, ScheduleStore, utcnow

logger = logging.getLogger(__name__)


class OutcomeRecorder:
    """Success/failure bookkeeping for a schedule's run history.

    Each outcome is applied as one store update, so readers see either the
    previous state or the fully recorded one.
    """

    def __init__(self, store: ScheduleStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or utcnow

    def record(self, schedule_id: int, outcome: DispatchOutcome) -> Optional[Schedule]:
        """Apply an outcome. Returns None if the schedule no longer exists."""
        if outcome.sent:
            return self.record_success(schedule_id)
        return self.record_failure(schedule_id, outcome.detail)

    def record_success(self, schedule_id: int) -> Optional[Schedule]:
        now = self._clock()
        updated = self.store.update(schedule_id, {
            "updated_at": now,
            "last_run_at": now,
            "last_sent_at": now,
            "last_status": RunStatus.SUCCESS,
            "last_error": None,
            "failure_count": 0,
        })
        if updated is None:
            logger.info(f"Schedule #{schedule_id} was removed before its outcome was recorded")
        return updated

    def record_failure(self, schedule_id: int, detail: str) -> Optional[Schedule]:
        # last_sent_at only ever tracks the most recent success
        now = self._clock()
        updated = self.store.update(
            schedule_id,
            {
                "updated_at": now,
                "last_run_at": now,
                "last_status": RunStatus.FAILED,
                "last_error": detail,
            },
            increments={"failure_count": 1},
        )
        if updated is None:
            logger.info(f"Schedule #{schedule_id} was removed before its outcome was recorded")
        return updated

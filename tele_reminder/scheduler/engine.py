"""Cron execution engine on top of python-telegram-bot's JobQueue."""

import logging
import threading
from datetime import datetime
from typing import Optional

from telegram.ext import ContextTypes, Job, JobQueue

from tele_reminder.delivery.dispatcher import DispatchOutcome, TelegramDispatcher
from tele_reminder.errors import InternalReconciliationError, NotFoundError
from .cron import build_trigger, resolve_timezone
from .models import Schedule, ScheduleStore
from .recorder import OutcomeRecorder

logger = logging.getLogger(__name__)


def job_name(schedule_id: int) -> str:
    return f"schedule-{schedule_id}"


class CronEngine:
    """Keeps exactly one live JobQueue job per active schedule.

    The id -> job registry is only touched through install, uninstall,
    reconcile, reconcile_all and shutdown, all of which hold one lock.
    """

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: TelegramDispatcher,
        recorder: OutcomeRecorder,
        job_queue: Optional[JobQueue] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.recorder = recorder
        self.job_queue = job_queue
        self._jobs: dict[int, Job] = {}
        self._lock = threading.RLock()

    def set_job_queue(self, job_queue: JobQueue) -> None:
        """Set the telegram JobQueue that runs the timers."""
        self.job_queue = job_queue

    def require_job_queue(self) -> JobQueue:
        """Raises InternalReconciliationError when no job queue is attached."""
        if self.job_queue is None:
            raise InternalReconciliationError("Cannot register schedules - no job queue attached")
        return self.job_queue

    @property
    def active_ids(self) -> frozenset[int]:
        """Ids that currently have a live timer."""
        with self._lock:
            return frozenset(self._jobs)

    def next_run_time(self, schedule_id: int) -> Optional[datetime]:
        with self._lock:
            job = self._jobs.get(schedule_id)
            return job.next_t if job else None

    # --- Registry mutation ---

    def reconcile_all(self) -> int:
        """Install a timer for every active schedule. Returns how many."""
        installed = 0
        with self._lock:
            for schedule in self.store.list_all():
                if schedule.is_active:
                    self.install(schedule.id)
                    installed += 1
        logger.info(f"Loaded {installed} active schedules")
        return installed

    def install(self, schedule_id: int) -> None:
        """Start a fresh timer for a schedule, replacing any existing one.

        Raises:
            NotFoundError: The schedule does not exist. Callers check first.
            InternalReconciliationError: No job queue is attached.
        """
        with self._lock:
            schedule = self.store.get(schedule_id)
            if schedule is None:
                raise NotFoundError(schedule_id)
            self.require_job_queue()

            trigger = build_trigger(schedule.cron_expression, resolve_timezone(schedule.timezone))
            self.uninstall(schedule_id)

            job = self.job_queue.run_custom(
                self._job_trigger,
                job_kwargs={
                    "trigger": trigger,
                    # one in-flight tick per schedule
                    "max_instances": 1,
                    "coalesce": True,
                },
                name=job_name(schedule_id),
                data=schedule_id,
            )
            self._jobs[schedule_id] = job
            logger.info(
                f"Registered schedule #{schedule_id} ({schedule.cron_expression} {schedule.timezone})"
            )

    def uninstall(self, schedule_id: int) -> bool:
        """Stop and forget a schedule's timer. No-op if there is none."""
        with self._lock:
            job = self._jobs.pop(schedule_id, None)
            if job is None:
                return False
            job.schedule_removal()
            logger.info(f"Unregistered schedule #{schedule_id}")
            return True

    def reconcile(self, schedule_id: int) -> None:
        """Uninstall, then re-install if the schedule exists and is active."""
        with self._lock:
            self.uninstall(schedule_id)
            schedule = self.store.get(schedule_id)
            if schedule is not None and schedule.is_active:
                self.install(schedule_id)

    def shutdown(self) -> None:
        """Stop every live timer."""
        with self._lock:
            for schedule_id in list(self._jobs):
                self.uninstall(schedule_id)
        logger.info("All schedule timers stopped")

    # --- Execution ---

    async def _job_trigger(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Called by the JobQueue when a schedule is due."""
        await self.on_tick(context.job.data)

    async def on_tick(self, schedule_id: int) -> Optional[DispatchOutcome]:
        """Handle one fire. Never raises.

        The schedule is re-read because it may have been changed or deleted
        after the timer was set up. A missing or inactive schedule is a no-op.
        """
        try:
            schedule = self.store.get(schedule_id)
            if schedule is None or not schedule.is_active:
                logger.info(f"Skipping tick for schedule #{schedule_id}: deleted or inactive")
                return None

            logger.info(f"🔔 Schedule #{schedule_id} triggered: {schedule.name}")
            outcome = await self.deliver(schedule)
            if not outcome.sent:
                logger.error(f"Schedule #{schedule_id} failed to send Telegram message: {outcome.detail}")
            return outcome
        except Exception as e:
            detail = str(e) or type(e).__name__
            logger.error(f"Schedule #{schedule_id} tick failed with exception: {detail}", exc_info=True)
            try:
                self.recorder.record_failure(schedule_id, detail)
            except Exception:
                logger.exception(f"Could not record failure for schedule #{schedule_id}")
            return DispatchOutcome(sent=False, detail=detail)

    async def deliver(self, schedule: Schedule) -> DispatchOutcome:
        """Dispatch a schedule's message and record the outcome."""
        outcome = await self.dispatcher.send(schedule.message, schedule.parse_mode)
        self.recorder.record(schedule.id, outcome)
        return outcome

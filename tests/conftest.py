"""Shared fixtures: a temp-file store, a fake JobQueue and a stub dispatcher."""

from datetime import datetime, timezone

import pytest

from tele_reminder.delivery.dispatcher import DispatchOutcome
from tele_reminder.metrics import DeliveryMetrics
from tele_reminder.scheduler import CronEngine, OutcomeRecorder, ScheduleService, ScheduleStore


class FakeJob:
    """Stands in for telegram.ext.Job."""

    def __init__(self, callback, job_kwargs, name, data):
        self.callback = callback
        self.job_kwargs = job_kwargs
        self.name = name
        self.data = data
        self.removed = False

    def schedule_removal(self):
        self.removed = True

    @property
    def next_t(self):
        return self.job_kwargs["trigger"].get_next_fire_time(None, datetime.now(timezone.utc))


class FakeJobQueue:
    """Records run_custom calls the way telegram.ext.JobQueue would receive them."""

    def __init__(self):
        self.jobs: list[FakeJob] = []

    def run_custom(self, callback, job_kwargs, data=None, name=None, chat_id=None, user_id=None):
        job = FakeJob(callback, job_kwargs, name, data)
        self.jobs.append(job)
        return job

    def live_jobs(self) -> list[FakeJob]:
        return [job for job in self.jobs if not job.removed]

    def live_ids(self) -> set[int]:
        return {job.data for job in self.live_jobs()}


class StubDispatcher:
    """Returns queued outcomes; succeeds once the queue is empty."""

    def __init__(self):
        self.metrics = DeliveryMetrics()
        self.outcomes: list = []
        self.calls: list[tuple] = []

    async def send(self, message, parse_mode=None):
        self.calls.append((message, parse_mode))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return DispatchOutcome(sent=True, detail="Telegram alert sent.", attempts=1)


@pytest.fixture
def store(tmp_path):
    return ScheduleStore(tmp_path / "schedules.json")


@pytest.fixture
def job_queue():
    return FakeJobQueue()


@pytest.fixture
def dispatcher():
    return StubDispatcher()


@pytest.fixture
def recorder(store):
    return OutcomeRecorder(store)


@pytest.fixture
def engine(store, dispatcher, recorder, job_queue):
    return CronEngine(store, dispatcher, recorder, job_queue=job_queue)


@pytest.fixture
def service(store, engine, dispatcher):
    return ScheduleService(store, engine, dispatcher, default_timezone="Asia/Phnom_Penh")


@pytest.fixture
def make_schedule(store):
    """Insert a schedule directly into the store."""
    def _make(**overrides):
        fields = {
            "name": "Evening reminder",
            "cron_expression": "0 18 * * *",
            "timezone": "Asia/Phnom_Penh",
            "message": "<b>Do something now.</b>",
            "is_active": True,
        }
        fields.update(overrides)
        return store.insert(fields)
    return _make

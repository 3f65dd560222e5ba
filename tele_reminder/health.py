"""Liveness and readiness checks."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from tele_reminder.config import Config
from tele_reminder.scheduler.models import ScheduleStore


@dataclass
class CheckResult:
    ok: bool
    error: Optional[str] = None


@dataclass
class Readiness:
    """Aggregate of named checks; ready only if every check passed."""
    checks: dict[str, CheckResult]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ready(self) -> bool:
        return all(check.ok for check in self.checks.values())

    @property
    def status(self) -> str:
        return "ready" if self.ready else "not_ready"


class ConfigHealthCheck:
    """Re-validates the running configuration."""

    def __init__(self, cfg: Config):
        self._config = cfg

    def __call__(self) -> CheckResult:
        errors = self._config.validate()
        if errors:
            return CheckResult(ok=False, error="; ".join(errors))
        return CheckResult(ok=True)


class StoreHealthCheck:
    """Checks that the schedules file can be read back and written."""

    def __init__(self, store: ScheduleStore):
        self._store = store

    def __call__(self) -> CheckResult:
        try:
            self._store.check()
        except (OSError, ValueError) as e:
            return CheckResult(ok=False, error=f"{type(e).__name__}: {e}")
        return CheckResult(ok=True)


def run_checks(checks: dict[str, Callable[[], CheckResult]]) -> Readiness:
    return Readiness(checks={name: check() for name, check in checks.items()})


def readiness(cfg: Config, store: ScheduleStore) -> Readiness:
    """Config and store checks, in the order they are reported."""
    return run_checks({
        "config": ConfigHealthCheck(cfg),
        "store": StoreHealthCheck(store),
    })

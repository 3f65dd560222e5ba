"""Tests for readiness checks."""

from types import SimpleNamespace

from tele_reminder.health import CheckResult, ConfigHealthCheck, StoreHealthCheck, readiness, run_checks
from tele_reminder.scheduler.models import ScheduleStore


def config_with(errors):
    return SimpleNamespace(validate=lambda: list(errors))


def test_ready_when_config_and_store_pass(store, make_schedule):
    make_schedule()

    result = readiness(config_with([]), store)

    assert result.ready is True
    assert result.status == "ready"
    assert list(result.checks) == ["config", "store"]
    assert result.timestamp.tzinfo is not None


def test_config_errors_are_reported():
    check = ConfigHealthCheck(config_with(["TELEGRAM_CHAT_ID is required", "TELEGRAM_MAX_RETRIES bad"]))

    assert check() == CheckResult(ok=False, error="TELEGRAM_CHAT_ID is required; TELEGRAM_MAX_RETRIES bad")


def test_store_check_passes_before_first_write(tmp_path):
    store = ScheduleStore(tmp_path / "nested" / "schedules.json")

    assert StoreHealthCheck(store)().ok is True


def test_corrupt_store_file_is_not_ready(tmp_path):
    path = tmp_path / "schedules.json"
    store = ScheduleStore(path)
    path.write_text("{broken", encoding="utf-8")

    result = readiness(config_with([]), store)

    assert result.status == "not_ready"
    assert result.checks["config"].ok is True
    assert result.checks["store"].ok is False
    assert result.checks["store"].error.startswith("JSONDecodeError")


def test_store_path_under_a_file_is_not_ready(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = ScheduleStore(blocker / "schedules.json")

    check = StoreHealthCheck(store)()

    assert check.ok is False


def test_run_checks_requires_every_check():
    result = run_checks({
        "a": lambda: CheckResult(ok=True),
        "b": lambda: CheckResult(ok=False, error="down"),
    })

    assert result.ready is False

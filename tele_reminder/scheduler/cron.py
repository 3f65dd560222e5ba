"""Cron expression and timezone parsing for APScheduler triggers."""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from tele_reminder.errors import ValidationError

# Cron numbering: 0=Sun ... 6=Sat, 7=Sun again
CRON_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def resolve_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name or raise ValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Invalid timezone: {name}")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise ValidationError(f"Invalid timezone: {name}") from e


def _convert_day_of_week(value: str) -> str:
    """Rewrite a numeric cron weekday field with day names.

    APScheduler numbers weekdays from Monday=0, so "1-5" would otherwise
    mean Tuesday to Saturday. Named fields pass through untouched.
    """
    if value in ("*", "?"):
        return "*"
    if any(ch.isalpha() for ch in value):
        return value

    days: set[int] = set()
    for part in value.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            start_text, end_text = base.split("-", 1)
            start, end = int(start_text), int(end_text)
        else:
            start = int(base)
            end = 7 if step_text else start
        if step < 1 or not 0 <= start <= end <= 7:
            raise ValueError(f"Invalid day of week: {part}")
        days.update(day % 7 for day in range(start, end + 1, step))

    return ",".join(CRON_DAY_NAMES[day] for day in sorted(days))


def build_trigger(expression: str, tz: ZoneInfo) -> CronTrigger:
    """Build a CronTrigger from a five- or six-field cron expression.

    Format: [second] minute hour day_of_month month day_of_week
    Example: "0 9 * * 1-5" = weekdays at 9:00 AM
    """
    parts = expression.strip().split() if isinstance(expression, str) else []
    if len(parts) not in (5, 6):
        raise ValidationError(f"Invalid cron expression: {expression}")
    if len(parts) == 5:
        parts.insert(0, "0")

    second, minute, hour, day, month, day_of_week = parts
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_convert_day_of_week(day_of_week),
            timezone=tz,
        )
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid cron expression: {expression}") from e


def validate_cron(expression: str, timezone_name: str = "UTC") -> None:
    """Raise ValidationError unless the expression parses."""
    build_trigger(expression, resolve_timezone(timezone_name))


def next_fire_time(expression: str, timezone_name: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Next due time for an expression, or None if it never fires again."""
    tz = resolve_timezone(timezone_name)
    trigger = build_trigger(expression, tz)
    return trigger.get_next_fire_time(None, now or datetime.now(tz))

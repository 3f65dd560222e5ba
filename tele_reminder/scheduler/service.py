"""Schedule management operations used by the bot and the app."""

import logging
from typing import Any, Optional

from tele_reminder.delivery.dispatcher import DispatchOutcome, ParseMode, TelegramDispatcher
from tele_reminder.delivery.reminders import TIME_SLOTS, build_reminder_message
from tele_reminder.errors import NotFoundError, ValidationError
from .cron import build_trigger, resolve_timezone
from .engine import CronEngine
from .models import Schedule, ScheduleStore

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 120

DEFAULT_MESSAGE = "<b>Do something now.</b>"
DEFAULT_SCHEDULES = (
    ("Default 6 PM Alert", "0 18 * * *"),
    ("Default 9 PM Alert", "0 21 * * *"),
)

EDITABLE_FIELDS = frozenset({
    "name",
    "cron_expression",
    "timezone",
    "message",
    "parse_mode",
    "is_active",
})


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name must be a non-empty string")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"name must be at most {MAX_NAME_LENGTH} characters")
    return name


def _validate_message(message: Any) -> str:
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("message must be a non-empty string")
    return message


def _validate_parse_mode(parse_mode: Any) -> ParseMode:
    try:
        return ParseMode(parse_mode)
    except ValueError:
        allowed = ", ".join(mode.value for mode in ParseMode)
        raise ValidationError(f"parse_mode must be one of: {allowed}") from None


def _validate_is_active(is_active: Any) -> bool:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")
    return is_active


def _validate_schedule(cron_expression: str, timezone: str) -> None:
    """Both must hold before anything reaches the store or the engine."""
    build_trigger(cron_expression, resolve_timezone(timezone))


class ScheduleService:
    """Create, change, delete and send schedules.

    Every mutation is validated first, written to the store, then mirrored
    into the engine's timer registry.
    """

    def __init__(
        self,
        store: ScheduleStore,
        engine: CronEngine,
        dispatcher: TelegramDispatcher,
        default_timezone: str,
    ):
        self.store = store
        self.engine = engine
        self.dispatcher = dispatcher
        self.default_timezone = default_timezone

    def bootstrap(self) -> int:
        """Seed defaults into an empty store and start all active timers."""
        self.ensure_default_schedules()
        return self.engine.reconcile_all()

    def ensure_default_schedules(self) -> bool:
        """Insert the 6 PM and 9 PM reminders if there are no schedules yet."""
        if self.store.count() > 0:
            return False

        for name, cron_expression in DEFAULT_SCHEDULES:
            self.store.insert({
                "name": name,
                "cron_expression": cron_expression,
                "timezone": self.default_timezone,
                "message": DEFAULT_MESSAGE,
                "parse_mode": ParseMode.HTML,
                "is_active": True,
            })
        logger.info("Seeded default schedules (6 PM and 9 PM)")
        return True

    def shutdown(self) -> None:
        self.engine.shutdown()

    # --- Queries ---

    def list_schedules(self) -> list[Schedule]:
        """List all schedules, newest first."""
        return self.store.list_all()

    def get(self, schedule_id: int) -> Schedule:
        """Get a schedule by ID.

        Raises:
            NotFoundError: If there is no such schedule.
        """
        schedule = self.store.get(schedule_id)
        if schedule is None:
            raise NotFoundError(schedule_id)
        return schedule

    # --- Mutations ---

    def create(
        self,
        name: str,
        cron_expression: str,
        message: str,
        timezone: Optional[str] = None,
        parse_mode: Optional[str] = None,
        is_active: bool = True,
    ) -> Schedule:
        """Create a schedule and start its timer if active."""
        timezone = timezone if timezone is not None else self.default_timezone
        fields = {
            "name": _validate_name(name),
            "cron_expression": cron_expression,
            "timezone": timezone,
            "message": _validate_message(message),
            "parse_mode": _validate_parse_mode(parse_mode if parse_mode is not None else ParseMode.HTML),
            "is_active": _validate_is_active(is_active),
        }
        _validate_schedule(cron_expression, timezone)
        if fields["is_active"]:
            self.engine.require_job_queue()

        created = self.store.insert(fields)
        if created.is_active:
            self.engine.install(created.id)

        logger.info(f"Created schedule #{created.id}: {created.name}")
        return created

    def update(self, schedule_id: int, **changes: Any) -> Schedule:
        """Update any subset of the editable fields.

        The timer is always rebuilt, whatever changed.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown schedule fields: {', '.join(sorted(unknown))}")

        existing = self.get(schedule_id)

        values: dict[str, Any] = {}
        if "name" in changes:
            values["name"] = _validate_name(changes["name"])
        if "message" in changes:
            values["message"] = _validate_message(changes["message"])
        if "parse_mode" in changes:
            values["parse_mode"] = _validate_parse_mode(changes["parse_mode"])
        if "is_active" in changes:
            values["is_active"] = _validate_is_active(changes["is_active"])
        if "cron_expression" in changes:
            values["cron_expression"] = changes["cron_expression"]
        if "timezone" in changes:
            values["timezone"] = changes["timezone"]

        _validate_schedule(
            values.get("cron_expression", existing.cron_expression),
            values.get("timezone", existing.timezone),
        )

        updated = self.store.update(schedule_id, values)
        if updated is None:
            raise NotFoundError(schedule_id)

        self.engine.reconcile(schedule_id)

        logger.info(f"Updated schedule #{schedule_id}")
        return updated

    def toggle(self, schedule_id: int) -> Schedule:
        """Flip a schedule between active and paused."""
        schedule = self.get(schedule_id)
        return self.update(schedule_id, is_active=not schedule.is_active)

    def delete(self, schedule_id: int) -> Schedule:
        """Stop a schedule's timer and remove it."""
        schedule = self.get(schedule_id)
        self.engine.uninstall(schedule_id)
        self.store.delete(schedule_id)

        logger.info(f"Deleted schedule #{schedule_id}")
        return schedule

    # --- Sending ---

    async def send_now(self, schedule_id: int) -> DispatchOutcome:
        """Send a schedule's message immediately, bypassing its timer."""
        schedule = self.get(schedule_id)
        return await self.engine.deliver(schedule)

    async def send_reminder(self, slot: str) -> DispatchOutcome:
        """Send the fixed reminder for a time slot ("6pm" or "9pm")."""
        label = TIME_SLOTS.get(slot)
        if label is None:
            raise ValidationError(f"time must be one of: {', '.join(TIME_SLOTS)}")

        message = build_reminder_message(label, resolve_timezone(self.default_timezone))
        return await self.dispatcher.send(message, ParseMode.HTML)

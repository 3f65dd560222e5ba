"""Error types raised by the scheduling layer."""


class ReminderError(Exception):
    """Base class for tele-reminder errors."""


class ValidationError(ReminderError):
    """Rejected input (cron, timezone, enum or field values)."""


class NotFoundError(ReminderError):
    """Raised when a schedule id does not exist."""

    def __init__(self, schedule_id: int):
        super().__init__(f"Schedule with id {schedule_id} not found.")
        self.schedule_id = schedule_id


class InternalReconciliationError(ReminderError):
    """The timer registry could not be brought in line with the store."""

"""Fixed reminder message for the named time slots."""

import html
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

# Slot key accepted from callers -> label shown in the message
TIME_SLOTS = {
    "6pm": "6:00 PM",
    "9pm": "9:00 PM",
}


def build_reminder_message(time_slot: str, tz: ZoneInfo, now: Optional[datetime] = None) -> str:
    """Build the HTML reminder for a time slot label such as "6:00 PM"."""
    now = (now or datetime.now(tz)).astimezone(tz)
    time_label = now.strftime("%b %d, %Y, %I:%M:%S %p")

    return "\n".join([
        "<b>Scheduled Reminder</b>",
        f"Time slot: <b>{html.escape(time_slot)}</b>",
        f"Now: <code>{html.escape(time_label)}</code>",
        "",
        "<i>Do something now.</i>",
    ])

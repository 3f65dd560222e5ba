"""Outgoing Telegram message delivery."""

from .dispatcher import (
    AttemptKind,
    AttemptResult,
    DispatchOutcome,
    ParseMode,
    TelegramDispatcher,
    is_retryable_status,
)
from .reminders import TIME_SLOTS, build_reminder_message

__all__ = [
    "AttemptKind",
    "AttemptResult",
    "DispatchOutcome",
    "ParseMode",
    "TelegramDispatcher",
    "is_retryable_status",
    "TIME_SLOTS",
    "build_reminder_message",
]

"""Tele-Reminder: cron-scheduled Telegram reminders."""

__version__ = "0.1.0"

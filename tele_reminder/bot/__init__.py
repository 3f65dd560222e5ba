"""Telegram bot commands."""

from .commands import setup_commands

__all__ = ["setup_commands"]

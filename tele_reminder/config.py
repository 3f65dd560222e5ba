"""Configuration management for Tele-Reminder."""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_ALERT_TIMEZONE = "Asia/Phnom_Penh"
DEFAULT_REQUEST_TIMEOUT_MS = 5000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_MS = 500

MIN_REQUEST_TIMEOUT_MS = 100
MIN_RETRY_BASE_DELAY_MS = 50
MAX_RETRIES_LIMIT = 10


def _int_env(key: str, default: int) -> Optional[int]:
    """Read an integer env var; None marks an unparseable value."""
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass
class TelegramConfig:
    """Telegram bot configuration."""
    bot_token: str = field(default_factory=lambda: os.getenv("TELEGRAM_BOT_TOKEN", "").strip())
    chat_id: str = field(default_factory=lambda: os.getenv("TELEGRAM_CHAT_ID", "").strip())
    admin_id: Optional[int] = field(default_factory=lambda: _int_env("TELEGRAM_ADMIN_ID", 0))


@dataclass
class DeliveryConfig:
    """Retry and timeout tuning for outgoing Telegram messages."""
    request_timeout_ms: Optional[int] = field(
        default_factory=lambda: _int_env("TELEGRAM_REQUEST_TIMEOUT_MS", DEFAULT_REQUEST_TIMEOUT_MS)
    )
    max_retries: Optional[int] = field(
        default_factory=lambda: _int_env("TELEGRAM_MAX_RETRIES", DEFAULT_MAX_RETRIES)
    )
    retry_base_delay_ms: Optional[int] = field(
        default_factory=lambda: _int_env("TELEGRAM_RETRY_BASE_DELAY_MS", DEFAULT_RETRY_BASE_DELAY_MS)
    )


@dataclass
class PathsConfig:
    """File system paths configuration."""
    schedules_file: Path = field(
        default_factory=lambda: Path(os.getenv("SCHEDULES_FILE", "./data/schedules.json"))
    )
    log_dir: Path = field(default_factory=lambda: Path(os.getenv("LOG_DIR", "./logs")))


def is_valid_timezone(name: str) -> bool:
    """Check that a timezone name resolves in the runtime tz database."""
    if not isinstance(name, str) or not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


@dataclass
class Config:
    """Main configuration container."""
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    alert_timezone: str = field(
        default_factory=lambda: os.getenv("ALERT_TIMEZONE", "").strip() or DEFAULT_ALERT_TIMEZONE
    )
    metrics_port: Optional[int] = field(default_factory=lambda: _int_env("METRICS_PORT", 0))

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.telegram.bot_token:
            errors.append("TELEGRAM_BOT_TOKEN is required")
        if not self.telegram.chat_id:
            errors.append("TELEGRAM_CHAT_ID is required")
        if not self.telegram.admin_id:
            errors.append("TELEGRAM_ADMIN_ID must be a non-zero integer")

        if not is_valid_timezone(self.alert_timezone):
            errors.append(f"ALERT_TIMEZONE is invalid: {self.alert_timezone}")

        delivery = self.delivery
        if delivery.request_timeout_ms is None or delivery.request_timeout_ms < MIN_REQUEST_TIMEOUT_MS:
            errors.append(f"TELEGRAM_REQUEST_TIMEOUT_MS must be an integer >= {MIN_REQUEST_TIMEOUT_MS}")
        if delivery.max_retries is None or not 1 <= delivery.max_retries <= MAX_RETRIES_LIMIT:
            errors.append(f"TELEGRAM_MAX_RETRIES must be an integer between 1 and {MAX_RETRIES_LIMIT}")
        if delivery.retry_base_delay_ms is None or delivery.retry_base_delay_ms < MIN_RETRY_BASE_DELAY_MS:
            errors.append(f"TELEGRAM_RETRY_BASE_DELAY_MS must be an integer >= {MIN_RETRY_BASE_DELAY_MS}")

        if self.metrics_port is None or not 0 <= self.metrics_port <= 65535:
            errors.append("METRICS_PORT must be an integer between 0 and 65535")

        return errors


# Global config instance
config = Config()

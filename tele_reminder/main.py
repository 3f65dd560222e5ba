"""Main entry point for Tele-Reminder."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from telegram.ext import Application

from tele_reminder.config import Config, config
from tele_reminder.bot import setup_commands
from tele_reminder.delivery import TelegramDispatcher
from tele_reminder.health import Readiness, readiness
from tele_reminder.metrics import DeliveryMetrics
from tele_reminder.scheduler import CronEngine, OutcomeRecorder, ScheduleService, ScheduleStore

logger = logging.getLogger(__name__)


def configure_logging(cfg: Config) -> None:
    """Log to the console and to a file under the log directory."""
    cfg.paths.log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(cfg.paths.log_dir / "tele-reminder.log", encoding="utf-8"),  # File output
        ],
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


class TeleReminder:
    """Main Tele-Reminder application."""

    def __init__(self, cfg: Config = config):
        self.config = cfg
        self.start_time = datetime.now()

        self.metrics = DeliveryMetrics()
        self.store: Optional[ScheduleStore] = None
        self.dispatcher: Optional[TelegramDispatcher] = None
        self.engine: Optional[CronEngine] = None
        self.service: Optional[ScheduleService] = None
        self.app: Optional[Application] = None

    def initialize(self) -> None:
        """Validate configuration and wire all components."""
        logger.info("Initializing Tele-Reminder...")

        errors = self.config.validate()
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise ValueError("Configuration validation failed")

        delivery = self.config.delivery
        self.store = ScheduleStore(self.config.paths.schedules_file)
        self.dispatcher = TelegramDispatcher(
            bot_token=self.config.telegram.bot_token,
            chat_id=self.config.telegram.chat_id,
            request_timeout_ms=delivery.request_timeout_ms,
            max_retries=delivery.max_retries,
            retry_base_delay_ms=delivery.retry_base_delay_ms,
            metrics=self.metrics,
        )
        recorder = OutcomeRecorder(self.store)
        self.engine = CronEngine(self.store, self.dispatcher, recorder)
        self.service = ScheduleService(
            self.store,
            self.engine,
            self.dispatcher,
            default_timezone=self.config.alert_timezone,
        )

        # Build Telegram application; its JobQueue runs the schedule timers
        self.app = Application.builder().token(self.config.telegram.bot_token).build()
        self.engine.set_job_queue(self.app.job_queue)

        # Store references in bot_data for handlers
        self.app.bot_data["reminder"] = self
        self.app.bot_data["config"] = self.config
        self.app.bot_data["service"] = self.service

        setup_commands(self.app)

        logger.info("Tele-Reminder initialized successfully")

    async def run(self) -> None:
        """Run the bot until cancelled."""
        self.initialize()

        logger.info("Starting Tele-Reminder...")
        await self.app.initialize()
        await self.app.start()

        # Timers are live before any command can reach the service
        installed = self.service.bootstrap()
        logger.info(f"Scheduler started with {installed} active schedules")
        status = self.readiness()
        if not status.ready:
            logger.warning(f"Readiness: {status.status} {status.checks}")

        if self.config.metrics_port:
            self.metrics.serve(self.config.metrics_port)

        await self.app.updater.start_polling(drop_pending_updates=True)
        logger.info("Tele-Reminder is running. Press Ctrl+C to stop.")

        try:
            while True:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop timers first so nothing fires during teardown."""
        logger.info("Shutting down...")
        self.service.shutdown()
        await self.app.updater.stop()
        await self.app.stop()
        await self.app.shutdown()
        await self.dispatcher.close()

    def readiness(self) -> Readiness:
        """Re-validate config and check the schedules file."""
        return readiness(self.config, self.store)

    @property
    def uptime(self) -> str:
        """Get formatted uptime string."""
        delta = datetime.now() - self.start_time
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours:
            return f"{hours}h {minutes}m"
        return f"{minutes}m {seconds}s"


def main():
    """Entry point."""
    configure_logging(config)
    reminder = TeleReminder()
    try:
        asyncio.run(reminder.run())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")


if __name__ == "__main__":
    main()

"""Telegram command handlers for managing schedules."""

import logging
from datetime import datetime
from functools import wraps
from typing import Optional

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from tele_reminder.config import config
from tele_reminder.delivery.reminders import TIME_SLOTS
from tele_reminder.errors import ReminderError
from tele_reminder.health import readiness
from tele_reminder.scheduler.models import Schedule

logger = logging.getLogger(__name__)

# Inline buttons are shown for at most this many schedules
MAX_KEYBOARD_SCHEDULES = 10

HELP_TEXT = (
    "Tele-Reminder\n\n"
    "Commands:\n"
    "/schedules - List schedules with pause/send/delete buttons\n"
    "/add <cron> | <name> | <message> - Create a schedule (HTML message)\n"
    "/sendnow <id> - Send a schedule's message right away\n"
    "/remind <6pm|9pm> - Send the fixed reminder for a time slot\n"
    "/status - Delivery counters and uptime\n"
    "/health - Readiness of config and schedule storage\n"
    "/help - Show this message"
)


def _is_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    user_id = update.effective_user.id if update.effective_user else 0
    admin_id = context.bot_data.get("config", config).telegram.admin_id
    return bool(admin_id) and user_id == admin_id


def admin_only(func):
    """Decorator to restrict commands to admin user only."""
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not _is_admin(update, context):
            return None
        return await func(update, context)
    return wrapper


def format_schedule(schedule: Schedule, next_run: Optional[datetime] = None) -> str:
    """Render one schedule as a few lines of plain text."""
    status = "✅" if schedule.is_active else "⏸️"
    lines = [
        f"{status} #{schedule.id} {schedule.name}",
        f"   Cron: {schedule.cron_expression} ({schedule.timezone})",
    ]
    if next_run:
        lines.append(f"   Next: {next_run.strftime('%Y-%m-%d %H:%M %Z')}")
    if schedule.last_status:
        lines.append(f"   Last: {schedule.last_status.value} at {schedule.last_run_at:%Y-%m-%d %H:%M} UTC")
    if schedule.failure_count:
        lines.append(f"   Failures: {schedule.failure_count} ({schedule.last_error})")
    return "\n".join(lines)


def _parse_id(text: str) -> Optional[int]:
    try:
        return int(text.lstrip("#"))
    except ValueError:
        return None


@admin_only
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command."""
    await update.message.reply_text(HELP_TEXT)


@admin_only
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    await update.message.reply_text(HELP_TEXT)


@admin_only
async def schedules_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /schedules command - list schedules with management buttons."""
    service = context.bot_data.get("service")

    if not service:
        await update.message.reply_text("Scheduler not initialized.")
        return

    schedules = service.list_schedules()

    if not schedules:
        await update.message.reply_text(
            "📅 No schedules.\n\n"
            "Create one with:\n"
            "/add 0 18 * * * | Evening | <b>Do something now.</b>"
        )
        return

    lines = ["📅 Schedules:\n"]
    for schedule in schedules:
        lines.append(format_schedule(schedule, service.engine.next_run_time(schedule.id)))
        lines.append("")

    keyboard = []
    for schedule in schedules[:MAX_KEYBOARD_SCHEDULES]:
        toggle_emoji = "⏸️" if schedule.is_active else "▶️"
        keyboard.append([
            InlineKeyboardButton(f"{toggle_emoji} #{schedule.id}", callback_data=f"schedule:toggle:{schedule.id}"),
            InlineKeyboardButton("📤", callback_data=f"schedule:send:{schedule.id}"),
            InlineKeyboardButton("🗑️", callback_data=f"schedule:delete:{schedule.id}"),
        ])

    await update.message.reply_text("\n".join(lines), reply_markup=InlineKeyboardMarkup(keyboard))


@admin_only
async def add_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add <cron> | <name> | <message>."""
    service = context.bot_data.get("service")
    parts = [part.strip() for part in " ".join(context.args or []).split("|", 2)]

    if len(parts) != 3 or not all(parts):
        await update.message.reply_text("Usage: /add <cron> | <name> | <message>")
        return

    cron_expression, name, message = parts
    try:
        schedule = service.create(name=name, cron_expression=cron_expression, message=message)
    except ReminderError as e:
        await update.message.reply_text(f"❌ {e}")
        return

    await update.message.reply_text(f"✅ Scheduled!\n\n{format_schedule(schedule)}")


@admin_only
async def sendnow_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /sendnow <id>."""
    service = context.bot_data.get("service")
    schedule_id = _parse_id(context.args[0]) if context.args else None

    if schedule_id is None:
        await update.message.reply_text("Usage: /sendnow <id>")
        return

    try:
        outcome = await service.send_now(schedule_id)
    except ReminderError as e:
        await update.message.reply_text(f"❌ {e}")
        return

    prefix = "✅" if outcome.sent else "❌"
    await update.message.reply_text(f"{prefix} Schedule #{schedule_id}: {outcome.detail}")


@admin_only
async def remind_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remind <6pm|9pm>."""
    service = context.bot_data.get("service")
    slot = context.args[0].lower() if context.args else ""

    if slot not in TIME_SLOTS:
        await update.message.reply_text(f"Usage: /remind <{'|'.join(TIME_SLOTS)}>")
        return

    outcome = await service.send_reminder(slot)
    prefix = "✅" if outcome.sent else "❌"
    await update.message.reply_text(f"{prefix} {outcome.detail}")


@admin_only
async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status command - show delivery counters."""
    reminder = context.bot_data.get("reminder")
    service = context.bot_data.get("service")

    schedules = service.list_schedules() if service else []
    active = sum(1 for s in schedules if s.is_active)
    failing = sum(1 for s in schedules if s.failure_count)
    counters = service.dispatcher.metrics.snapshot() if service else {}
    uptime = reminder.uptime if reminder else "N/A"

    await update.message.reply_text(
        "⏰ Tele-Reminder Status\n\n"
        f"Schedules: {active} active, {len(schedules) - active} paused, {failing} failing\n"
        f"Timers: {len(service.engine.active_ids) if service else 0} live\n"
        f"Sends: {counters.get('success', 0):.0f} ok, {counters.get('failure', 0):.0f} failed, "
        f"{counters.get('retry', 0):.0f} retries\n"
        f"Uptime: {uptime}"
    )


@admin_only
async def health_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /health command - re-run readiness checks."""
    service = context.bot_data.get("service")
    reminder = context.bot_data.get("reminder")

    if not service:
        await update.message.reply_text("Scheduler not initialized.")
        return

    result = readiness(context.bot_data.get("config", config), service.store)

    lines = [f"🩺 Readiness: {result.status}"]
    for name, check in result.checks.items():
        lines.append(f"{'✅' if check.ok else '❌'} {name}" + (f": {check.error}" if check.error else ""))
    lines.append(f"Uptime: {reminder.uptime if reminder else 'N/A'}")

    await update.message.reply_text("\n".join(lines))


async def handle_callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle inline keyboard button presses."""
    query = update.callback_query
    await query.answer()

    if not _is_admin(update, context):
        return

    if query.data.startswith("schedule:"):
        await handle_schedule_callback(update, context, query.data)


async def handle_schedule_callback(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    data: str,
) -> None:
    """Handle schedule management callbacks."""
    query = update.callback_query
    service = context.bot_data.get("service")

    if not service:
        await query.edit_message_text("Scheduler not available.")
        return

    parts = data.split(":")
    if len(parts) != 3 or _parse_id(parts[2]) is None:
        return
    action, schedule_id = parts[1], _parse_id(parts[2])

    try:
        if action == "toggle":
            schedule = service.toggle(schedule_id)
            state_text = "resumed ▶️" if schedule.is_active else "paused ⏸️"
            await query.edit_message_text(f"Schedule #{schedule_id} {state_text}")

        elif action == "send":
            outcome = await service.send_now(schedule_id)
            prefix = "✅" if outcome.sent else "❌"
            await query.edit_message_text(f"{prefix} Schedule #{schedule_id}: {outcome.detail}")

        elif action == "delete":
            schedule = service.delete(schedule_id)
            await query.edit_message_text(f"🗑️ Deleted schedule #{schedule_id}: {schedule.name}")

    except ReminderError as e:
        await query.edit_message_text(f"❌ {e}")


def setup_commands(app: Application) -> None:
    """Register command handlers with the application."""
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("schedules", schedules_command))
    app.add_handler(CommandHandler("add", add_command))
    app.add_handler(CommandHandler("sendnow", sendnow_command))
    app.add_handler(CommandHandler("remind", remind_command))
    app.add_handler(CommandHandler("status", status_command))
    app.add_handler(CommandHandler("health", health_command))

    # Handle inline keyboard callbacks
    app.add_handler(CallbackQueryHandler(handle_callback_query))

    logger.info("Command handlers registered")

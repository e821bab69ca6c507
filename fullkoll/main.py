"""Main entry point for the Full Koll reminder service."""

import asyncio
import logging
import sys
from datetime import time
from zoneinfo import ZoneInfo

from telegram.ext import Application, ContextTypes

from fullkoll.config import Config
from fullkoll.db.migrations import run_migrations
from fullkoll.db.repository import Repository
from fullkoll.db.store import RecordStore
from fullkoll.engine.charges import ChargeProcessor
from fullkoll.engine.orchestrator import ReminderOrchestrator
from fullkoll.engine.schedule import EvaluationMode
from fullkoll.notify.transport import LoggingTransport, NotificationTransport, TelegramTransport
from fullkoll.utils.error_handler import error_handler
from fullkoll.utils.time_utils import parse_clock

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL),
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


def build_orchestrator(
    store: RecordStore, transport: NotificationTransport
) -> ReminderOrchestrator:
    """Wire the reminder pass from configuration."""
    return ReminderOrchestrator(
        store,
        transport,
        mode=EvaluationMode(Config.EVALUATION_MODE),
        tz=Config.TIMEZONE,
        reminder_hour=Config.REMINDER_HOUR,
        max_concurrency=Config.MAX_CONCURRENCY,
        cancel_superseded_refs=Config.CANCEL_SUPERSEDED_REFS,
        log_notifications=Config.LOG_NOTIFICATIONS,
    )


def daily_at(value: str) -> time:
    """Local trigger time for JobQueue.run_daily."""
    return parse_clock(value).replace(tzinfo=ZoneInfo(Config.TIMEZONE))


async def reminder_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Job callback for the daily reminder pass."""
    orchestrator: ReminderOrchestrator = context.bot_data["orchestrator"]
    summary = await orchestrator.run(enabled=Config.REMINDERS_ENABLED)
    if summary.status == "error":
        logger.error(f"Reminder pass reported failure: {summary.error}")


async def charge_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Job callback for the daily recurring-charge pass."""
    charges: ChargeProcessor = context.bot_data["charges"]
    summary = await charges.run(enabled=Config.REMINDERS_ENABLED)
    if summary.status == "error":
        logger.error(f"Charge pass reported failure: {summary.error}")


async def post_init(application: Application) -> None:
    """Initialize resources and schedule the daily passes."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()
    application.bot_data["repo"] = repo

    job_queue = application.job_queue
    if job_queue is None:
        raise RuntimeError("python-telegram-bot[job-queue] is required")

    transport = TelegramTransport(job_queue)
    application.bot_data["orchestrator"] = build_orchestrator(repo, transport)
    application.bot_data["charges"] = ChargeProcessor(repo, Config.TIMEZONE)

    job_queue.run_daily(charge_job, time=daily_at(Config.CHARGE_RUN_TIME), name="charges")
    job_queue.run_daily(
        reminder_job, time=daily_at(Config.REMINDER_RUN_TIME), name="reminders"
    )
    logger.info(
        f"Daily passes scheduled (charges {Config.CHARGE_RUN_TIME}, "
        f"reminders {Config.REMINDER_RUN_TIME}, {Config.TIMEZONE})"
    )


async def post_shutdown(application: Application) -> None:
    """Cleanup resources on shutdown."""
    repo: Repository = application.bot_data.get("repo")
    if repo:
        await repo.close()

    logger.info("Full Koll shut down")


async def run_once() -> int:
    """Run both passes once against the database with the logging transport."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()
    try:
        charges = await ChargeProcessor(repo, Config.TIMEZONE).run(
            enabled=Config.REMINDERS_ENABLED
        )
        reminders = await build_orchestrator(repo, LoggingTransport()).run(
            enabled=Config.REMINDERS_ENABLED
        )
    finally:
        await repo.close()

    logger.info(
        f"Charges: {charges.status} ({charges.processed} processed); "
        f"reminders: {reminders.status} ({reminders.processed} processed)"
    )
    return 1 if "error" in (charges.status, reminders.status) else 0


def main() -> None:
    """Start the service."""
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if Config.TRANSPORT == "log":
        sys.exit(asyncio.run(run_once()))

    application = (
        Application.builder()
        .token(Config.TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    application.add_error_handler(error_handler)

    logger.info("Starting Full Koll reminder service...")
    application.run_polling(allowed_updates=["message"])


if __name__ == "__main__":
    main()

"""Notification transports.

A transport owns scheduled reminders: it hands out a job ref for every
accepted schedule call, fires the reminder at its time, and forgets the ref
once it has fired or been cancelled.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import uuid4
from zoneinfo import ZoneInfo

from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes, Job, JobQueue

from fullkoll.bot.formatters import format_notification
from fullkoll.utils.errors import TransportError

logger = logging.getLogger(__name__)


class NotificationTransport(Protocol):
    """Schedules and cancels reminder notifications."""

    async def schedule(
        self,
        user_id: str,
        fire_at: datetime,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> str:
        ...

    async def cancel(self, job_ref: str) -> None:
        ...


@dataclass
class ScheduledNotification:
    """A reminder held by a transport until it fires."""

    id: str
    to_user_id: str
    title: str
    body: str
    scheduled_at: datetime
    created_at: datetime
    channel: str = "push"
    data: dict[str, Any] = field(default_factory=dict)


def next_job_id(prefix: str = "job") -> str:
    return f"{prefix}_{uuid4()}"


class LoggingTransport:
    """In-memory transport that only logs; used for local runs and tests."""

    def __init__(self):
        self._scheduled: dict[str, ScheduledNotification] = {}
        self.cancelled: list[str] = []

    async def schedule(
        self,
        user_id: str,
        fire_at: datetime,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> str:
        notification = ScheduledNotification(
            id=next_job_id(),
            to_user_id=user_id,
            title=title,
            body=body,
            scheduled_at=fire_at,
            created_at=datetime.now(ZoneInfo("UTC")),
            data=dict(metadata),
        )
        self._scheduled[notification.id] = notification
        logger.info(f"(log) SCHEDULE PUSH @ {fire_at.isoformat()} to {user_id}: {title}")
        return notification.id

    async def cancel(self, job_ref: str) -> None:
        notification = self._scheduled.pop(job_ref, None)
        if notification is None:
            logger.info(f"(log) CANCEL skipped, unknown job ref {job_ref}")
            return
        self.cancelled.append(job_ref)
        logger.info(f"(log) CANCEL {job_ref} ({notification.title})")

    def list_scheduled(self) -> list[ScheduledNotification]:
        return list(self._scheduled.values())


class TelegramTransport:
    """Schedules reminders on the bot's job queue and sends them as messages.

    The owner id of a record is the Telegram chat id. Jobs live in memory, so
    refs do not survive a restart.
    """

    def __init__(self, job_queue: JobQueue):
        self.job_queue = job_queue
        self._jobs: dict[str, Job] = {}

    async def schedule(
        self,
        user_id: str,
        fire_at: datetime,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> str:
        try:
            chat_id = int(user_id)
        except (TypeError, ValueError):
            raise TransportError(f"Owner {user_id!r} is not a Telegram chat id") from None

        job_ref = next_job_id()
        now = datetime.now(fire_at.tzinfo or ZoneInfo("UTC"))
        # Instants already passed (daily batch buckets) go out right away
        when: datetime | float = fire_at if fire_at > now else 0

        try:
            job = self.job_queue.run_once(
                self._deliver,
                when=when,
                data={"title": title, "body": body, "metadata": metadata},
                name=job_ref,
                chat_id=chat_id,
            )
        except (RuntimeError, ValueError) as e:
            raise TransportError(f"Failed to schedule reminder: {e}") from e

        self._jobs[job_ref] = job
        return job_ref

    async def cancel(self, job_ref: str) -> None:
        job = self._jobs.pop(job_ref, None)
        if job is None:
            logger.info(f"Cancel skipped, unknown job ref {job_ref}")
            return
        job.schedule_removal()
        logger.info(f"Cancelled reminder job {job_ref}")

    async def _deliver(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Job callback that sends a due reminder."""
        job = context.job
        self._jobs.pop(job.name, None)
        data = job.data

        try:
            await context.bot.send_message(
                chat_id=job.chat_id,
                text=format_notification(data["title"], data["body"]),
                parse_mode=ParseMode.HTML,
            )
            logger.info(f"Sent reminder {job.name} ({data['metadata'].get('analyticsEvent')})")
        except TelegramError as e:
            logger.error(f"Failed to send reminder {job.name}: {e}")

"""Daily reminder pass over every record domain.

Records are evaluated through their domain policy and the returned patch is
written back. Two passes overlapping on the same record race: each writes a
full replacement of the record's job refs, and the last writer wins.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any
from zoneinfo import ZoneInfo

from fullkoll.bot.formatters import render_message
from fullkoll.db.store import RecordStore
from fullkoll.engine.policies import Evaluation, ReminderPolicy, default_policies
from fullkoll.engine.reconciler import Reconciler
from fullkoll.engine.schedule import EvaluationContext, EvaluationMode
from fullkoll.notify.transport import NotificationTransport
from fullkoll.utils.constants import DEFAULT_REMINDER_HOUR, NOTIFICATIONS_LOG
from fullkoll.utils.errors import StorageError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class DomainSummary:
    """Counters for one domain in one pass."""

    domain: str
    processed: int = 0
    updated: int = 0
    failed: int = 0
    scheduled: int = 0
    cancelled: int = 0
    error: str | None = None


@dataclass
class RunSummary:
    """What the trigger gets back from a pass."""

    status: str = "ok"  # ok | skipped | error
    domains: dict[str, DomainSummary] = field(default_factory=dict)
    error: str | None = None

    @property
    def processed(self) -> int:
        return sum(d.processed for d in self.domains.values())

    @property
    def failed(self) -> int:
        return sum(d.failed for d in self.domains.values())

    @property
    def scheduled(self) -> int:
        return sum(d.scheduled for d in self.domains.values())


def _jsonable(params: dict[str, Any]) -> dict[str, Any]:
    return {
        name: value.isoformat() if isinstance(value, datetime) else value
        for name, value in params.items()
    }


class ReminderOrchestrator:
    """Runs every policy over its domain's records."""

    def __init__(
        self,
        store: RecordStore,
        transport: NotificationTransport,
        policies: list[ReminderPolicy] | None = None,
        *,
        mode: EvaluationMode = EvaluationMode.CONTINUOUS,
        tz: str = "UTC",
        reminder_hour: int = DEFAULT_REMINDER_HOUR,
        max_concurrency: int = 8,
        cancel_superseded_refs: bool = False,
        log_notifications: bool = True,
    ):
        self.store = store
        self.policies = policies if policies is not None else default_policies()
        self.mode = mode
        self.tz = tz
        self.reminder_hour = reminder_hour
        self.max_concurrency = max_concurrency
        self.log_notifications = log_notifications
        self.reconciler = Reconciler(
            transport,
            render=partial(render_message, tz=tz),
            cancel_superseded_refs=cancel_superseded_refs,
        )

    async def run(self, now: datetime | None = None, enabled: bool = True) -> RunSummary:
        """Evaluate all domains once.

        Domains run concurrently. A storage failure anywhere halts the whole
        pass: no record of any domain is evaluated or persisted after it, and
        writes already made are not undone.
        """
        if not enabled:
            logger.info("Reminder pass disabled, skipping")
            return RunSummary(status="skipped")

        ctx = EvaluationContext.create(now, self.mode, self.tz, self.reminder_hour)
        logger.info(f"Reminder pass start ({ctx.mode.value}) at {ctx.now.isoformat()}")

        semaphore = asyncio.Semaphore(self.max_concurrency)
        halted = asyncio.Event()
        results = await asyncio.gather(
            *(self.run_domain(policy, ctx, semaphore, halted) for policy in self.policies),
            return_exceptions=True,
        )

        summary = RunSummary()
        for policy, result in zip(self.policies, results):
            if isinstance(result, BaseException):
                raise result
            summary.domains[policy.domain] = result
            if result.error is not None:
                logger.error(f"Reminder pass failed on {policy.domain}: {result.error}")
                summary.status = "error"
                summary.error = summary.error or result.error

        logger.info(
            f"Reminder pass done: {summary.processed} records, "
            f"{summary.scheduled} scheduled, {summary.failed} failed"
        )
        return summary

    async def run_domain(
        self,
        policy: ReminderPolicy,
        ctx: EvaluationContext,
        semaphore: asyncio.Semaphore,
        halted: asyncio.Event,
    ) -> DomainSummary:
        """Evaluate every listed record of one domain.

        A storage failure is recorded on the returned summary and sets
        `halted` for the rest of the pass.
        """
        summary = DomainSummary(policy.domain)
        try:
            records = await self.store.list(policy.domain, policy.list_filter(ctx))
        except StorageError as e:
            halted.set()
            summary.error = str(e)
            return summary

        logger.info(f"{policy.domain}: {len(records)} records to evaluate")

        async def process(record: Any) -> None:
            async with semaphore:
                if halted.is_set():
                    return
                await self.process_record(policy, record, ctx, summary, halted)

        results = await asyncio.gather(
            *(process(record) for record in records), return_exceptions=True
        )
        for result in results:
            if isinstance(result, StorageError):
                summary.error = summary.error or str(result)
            elif isinstance(result, BaseException):
                raise result

        return summary

    async def process_record(
        self,
        policy: ReminderPolicy,
        record: Any,
        ctx: EvaluationContext,
        summary: DomainSummary,
        halted: asyncio.Event,
    ) -> None:
        """Evaluate one record and persist its patch."""
        try:
            evaluation = await policy.evaluate(record, ctx, self.reconciler)
        except TransportError as e:
            summary.failed += 1
            logger.error(f"Transport failed for {policy.domain} {record.id}: {e}")
            return
        except Exception:
            summary.failed += 1
            logger.exception(f"Error evaluating {policy.domain} {record.id}")
            return

        summary.processed += 1
        summary.scheduled += len(evaluation.scheduled)
        summary.cancelled += evaluation.cancelled

        if halted.is_set():
            return

        try:
            if evaluation.patch:
                await self.store.update(policy.domain, record.id, evaluation.patch)
                summary.updated += 1
            if self.log_notifications:
                await self.log_scheduled(policy, record, evaluation)
        except StorageError:
            halted.set()
            raise

    async def log_scheduled(
        self, policy: ReminderPolicy, record: Any, evaluation: Evaluation
    ) -> None:
        """Append one notifications_log row per scheduled reminder."""
        created_at = datetime.now(ZoneInfo("UTC")).isoformat()
        for reminder in evaluation.scheduled:
            plan = reminder.plan
            await self.store.insert(
                NOTIFICATIONS_LOG,
                {
                    "user_id": policy.owner_of(record),
                    "resource_type": policy.resource_type,
                    "resource_id": record.id,
                    "title": reminder.title,
                    "body": reminder.body,
                    "title_key": plan.message.title_key,
                    "body_key": plan.message.body_key,
                    "params": _jsonable(plan.message.params),
                    "scheduled_at": plan.fire_at.isoformat(),
                    "created_at": created_at,
                    "channel": "push",
                    "payload": plan.metadata(),
                    "job_ref": reminder.job_ref,
                },
            )

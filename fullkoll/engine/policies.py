"""Per-domain reminder policies.

A policy knows which fields of a record are deadlines, which lead times apply,
when a record's reminders are switched off, and how its messages read. The
scheduling itself goes through the shared projector, due filter and
reconciler.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from fullkoll.db.models import GiftCard, Receipt, Settlement, Subscription
from fullkoll.db.store import RecordFilter
from fullkoll.engine.reconciler import Reconciler
from fullkoll.engine.schedule import (
    DeadlineCandidate,
    EvaluationContext,
    EvaluationMode,
    ReminderMessage,
    ReminderPlan,
    ScheduledReminder,
    parse_offsets,
)
from fullkoll.utils.constants import (
    AUTOGIRO_EVENT,
    DEFAULT_CHARGE_OFFSETS,
    DEFAULT_CURRENCY,
    GIFTCARD_EVENT,
    GIFTCARD_OFFSETS,
    GIFTCARDS,
    RECEIPT_DEADLINE_FIELDS,
    RECEIPT_EVENT,
    RECEIPT_OFFSETS,
    RECEIPTS,
    SETTLED_STATUS,
    SETTLEMENT_DUE_DAYS,
    SETTLEMENT_EVENT,
    SETTLEMENTS,
    SUBSCRIPTIONS,
    TRIAL_END_EVENT,
)

logger = logging.getLogger(__name__)


@dataclass
class Evaluation:
    """Outcome of evaluating one record.

    `patch` is a full replacement of the record's reminder fields; an empty
    patch means nothing should be written.
    """

    patch: dict[str, Any]
    scheduled: list[ScheduledReminder] = field(default_factory=list)
    cancelled: int = 0


def earliest_two(scheduled: list[ScheduledReminder]) -> tuple[str | None, str | None]:
    """ISO fire instants of the two earliest scheduled reminders."""
    times = sorted(reminder.plan.fire_at for reminder in scheduled)
    first = times[0].isoformat() if times else None
    second = times[1].isoformat() if len(times) > 1 else None
    return first, second


class ReminderPolicy:
    """Base policy: offset planning shared by every domain."""

    domain: str = ""
    resource_type: str = ""
    analytics_event: str = ""

    def list_filter(self, ctx: EvaluationContext) -> RecordFilter:
        """Query-layer filter for the records this pass should look at."""
        return RecordFilter()

    def owner_of(self, record: Any) -> str:
        return record.owner_id

    async def evaluate(
        self, record: Any, ctx: EvaluationContext, reconciler: Reconciler
    ) -> Evaluation:
        raise NotImplementedError

    def build_plan(
        self, record: Any, candidate: DeadlineCandidate, offset: int, fire_at
    ) -> ReminderPlan:
        raise NotImplementedError

    def plan(
        self,
        record: Any,
        candidates: list[DeadlineCandidate],
        offsets: list[int],
        ctx: EvaluationContext,
    ) -> list[ReminderPlan]:
        """Project every (deadline, offset) pair and keep the due ones."""
        plans = []
        for candidate in candidates:
            for offset in offsets:
                fire_at = ctx.project(candidate.instant, offset)
                if not ctx.is_due(fire_at):
                    continue
                plans.append(self.build_plan(record, candidate, offset, fire_at))
        return plans

    def batch_window(self, ctx: EvaluationContext, offsets: list[int]):
        """Deadlines whose reminder bucket can land today."""
        start, end = ctx.window
        return start + timedelta(days=min(offsets)), end + timedelta(days=max(offsets))


class ReceiptPolicy(ReminderPolicy):
    """Return, exchange, warranty and refund deadlines on a receipt."""

    domain = RECEIPTS
    resource_type = "receipt"
    analytics_event = RECEIPT_EVENT
    fields = RECEIPT_DEADLINE_FIELDS
    offsets = RECEIPT_OFFSETS

    def list_filter(self, ctx: EvaluationContext) -> RecordFilter:
        record_filter = RecordFilter(not_equals={"archived": True})
        if ctx.mode is EvaluationMode.DAILY_BATCH:
            record_filter.equals["reminders_enabled"] = True
            record_filter.window_fields = list(self.fields)
            record_filter.window = self.batch_window(ctx, self.offsets)
        return record_filter

    def cleared(self) -> dict[str, Any]:
        return {"reminder_jobs": {}, "reminder1_at": None, "reminder2_at": None}

    async def evaluate(
        self, record: Receipt, ctx: EvaluationContext, reconciler: Reconciler
    ) -> Evaluation:
        prior = [ref for refs in record.reminder_jobs.values() for ref in refs]

        if not record.reminders_enabled:
            cancelled = await reconciler.cancel_all(prior)
            return Evaluation(self.cleared(), cancelled=cancelled)

        deadlines = ctx.extract(record, self.fields)
        if not deadlines:
            logger.info(f"Receipt {record.id} has no deadlines, cancelling reminders")
            cancelled = await reconciler.cancel_all(prior)
            return Evaluation(self.cleared(), cancelled=cancelled)

        plans = self.plan(record, deadlines, self.offsets, ctx)
        scheduled = await reconciler.schedule(record.owner_id, plans)
        await reconciler.supersede(prior, scheduled)

        jobs: dict[str, list[str]] = {}
        for reminder in scheduled:
            jobs.setdefault(reminder.plan.kind, []).append(reminder.job_ref)
        first, second = earliest_two(scheduled)

        return Evaluation(
            {"reminder_jobs": jobs, "reminder1_at": first, "reminder2_at": second},
            scheduled=scheduled,
        )

    def build_plan(self, record, candidate, offset, fire_at) -> ReminderPlan:
        body_key = "notify.receipt.body_tomorrow" if offset == 1 else "notify.receipt.body_days"
        return ReminderPlan(
            kind=candidate.kind,
            offset_days=offset,
            fire_at=fire_at,
            deadline=candidate.instant,
            message=ReminderMessage(
                title_key="notify.receipt.title",
                body_key=body_key,
                params={
                    "store": record.store,
                    "kind": candidate.kind,
                    "deadline": candidate.instant,
                    "offset_days": offset,
                },
            ),
            analytics_event=self.analytics_event,
            data={"deadlineType": candidate.kind, "receiptId": record.id},
        )


class GiftCardPolicy(ReminderPolicy):
    """Expiry reminders for gift cards."""

    domain = GIFTCARDS
    resource_type = "giftcard"
    analytics_event = GIFTCARD_EVENT
    offsets = GIFTCARD_OFFSETS

    def list_filter(self, ctx: EvaluationContext) -> RecordFilter:
        record_filter = RecordFilter(not_equals={"archived": True})
        if ctx.mode is EvaluationMode.DAILY_BATCH:
            record_filter.equals["reminders_enabled"] = True
            record_filter.window_fields = ["expires_at"]
            record_filter.window = self.batch_window(ctx, self.offsets)
        return record_filter

    def cleared(self) -> dict[str, Any]:
        return {"reminder_job_ids": [], "reminder1_at": None, "reminder2_at": None}

    async def evaluate(
        self, record: GiftCard, ctx: EvaluationContext, reconciler: Reconciler
    ) -> Evaluation:
        prior = list(record.reminder_job_ids)
        deadlines = ctx.extract(record, ["expires_at"])

        if not deadlines or not record.reminders_enabled:
            cancelled = await reconciler.cancel_all(prior)
            return Evaluation(self.cleared(), cancelled=cancelled)

        plans = self.plan(record, deadlines, self.offsets, ctx)
        scheduled = await reconciler.schedule(record.owner_id, plans)
        await reconciler.supersede(prior, scheduled)
        first, second = earliest_two(scheduled)

        return Evaluation(
            {
                "reminder_job_ids": [reminder.job_ref for reminder in scheduled],
                "reminder1_at": first,
                "reminder2_at": second,
            },
            scheduled=scheduled,
        )

    def build_plan(self, record, candidate, offset, fire_at) -> ReminderPlan:
        return ReminderPlan(
            kind=candidate.kind,
            offset_days=offset,
            fire_at=fire_at,
            deadline=candidate.instant,
            message=ReminderMessage(
                title_key="notify.giftcard.title",
                body_key="notify.giftcard.body",
                params={
                    "brand": record.brand,
                    "balance": float(record.current_balance or 0),
                    "deadline": candidate.instant,
                },
            ),
            analytics_event=self.analytics_event,
            data={"expiresAt": candidate.instant.isoformat(), "giftcardId": record.id},
        )


class SubscriptionPolicy(ReminderPolicy):
    """Charge reminders for autogiro subscriptions, plus trial-end reminders."""

    domain = SUBSCRIPTIONS
    resource_type = "autogiro"
    analytics_event = AUTOGIRO_EVENT

    def list_filter(self, ctx: EvaluationContext) -> RecordFilter:
        if ctx.mode is EvaluationMode.DAILY_BATCH:
            return RecordFilter(equals={"is_paused": False})
        return RecordFilter()

    async def evaluate(
        self, record: Subscription, ctx: EvaluationContext, reconciler: Reconciler
    ) -> Evaluation:
        prior = [*record.charge_reminder_job_ids, record.trial_reminder_job_id]

        if record.is_paused:
            cancelled = await reconciler.cancel_all(prior)
            return Evaluation(
                {"charge_reminder_job_ids": [], "trial_reminder_job_id": None},
                cancelled=cancelled,
            )

        next_charge = ctx.parse(record.next_charge_at)
        if next_charge is None:
            return Evaluation({})

        offsets = parse_offsets(record.reminder_before_charge_days, DEFAULT_CHARGE_OFFSETS)
        candidate = DeadlineCandidate(kind="next_charge_at", instant=next_charge)
        charges = await reconciler.schedule(
            record.owner_id, self.plan(record, [candidate], offsets, ctx)
        )

        trial = []
        trial_plan = self.trial_plan(record, ctx)
        if trial_plan is not None:
            trial = await reconciler.schedule(record.owner_id, [trial_plan])

        await reconciler.supersede(prior, charges + trial)

        return Evaluation(
            {
                "charge_reminder_job_ids": [reminder.job_ref for reminder in charges],
                "trial_reminder_job_id": trial[0].job_ref if trial else None,
            },
            scheduled=charges + trial,
        )

    def trial_plan(self, record: Subscription, ctx: EvaluationContext) -> ReminderPlan | None:
        """A reminder on the day the trial ends, if the owner asked for one."""
        trial_ends = ctx.parse(record.trial_ends_at)
        if trial_ends is None or not record.reminder_on_trial_end:
            return None

        fire_at = ctx.project(trial_ends, 0)
        if not ctx.is_due(fire_at):
            return None

        return ReminderPlan(
            kind="trial_ends_at",
            offset_days=0,
            fire_at=fire_at,
            deadline=trial_ends,
            message=ReminderMessage(
                title_key="notify.autogiro.trial_title",
                body_key="notify.autogiro.trial_body",
                params={"service_name": record.service_name, "deadline": trial_ends},
            ),
            analytics_event=TRIAL_END_EVENT,
            data={"trialEndsAt": trial_ends.isoformat(), "subscriptionId": record.id},
        )

    def build_plan(self, record, candidate, offset, fire_at) -> ReminderPlan:
        title_key = (
            "notify.autogiro.title_tomorrow" if offset == 1 else "notify.autogiro.title_date"
        )
        params: dict[str, Any] = {
            "service_name": record.service_name,
            "deadline": candidate.instant,
        }
        if record.amount_per_period is not None:
            body_key = "notify.autogiro.body_amount"
            params["amount"] = float(record.amount_per_period)
            params["currency"] = record.currency or DEFAULT_CURRENCY
        else:
            body_key = "notify.autogiro.body_unknown"

        return ReminderPlan(
            kind=candidate.kind,
            offset_days=offset,
            fire_at=fire_at,
            deadline=candidate.instant,
            message=ReminderMessage(title_key=title_key, body_key=body_key, params=params),
            analytics_event=self.analytics_event,
            data={"chargeAt": candidate.instant.isoformat(), "subscriptionId": record.id},
        )


class SettlementPolicy(ReminderPolicy):
    """Payment nudge for open split-group settlements.

    The reminder fires a fixed number of days after the settlement was
    created and is rescheduled on every pass until it is settled.
    """

    domain = SETTLEMENTS
    resource_type = "split"
    analytics_event = SETTLEMENT_EVENT

    def owner_of(self, record: Settlement) -> str:
        return record.payer_id

    async def evaluate(
        self, record: Settlement, ctx: EvaluationContext, reconciler: Reconciler
    ) -> Evaluation:
        if record.status == SETTLED_STATUS:
            cancelled = await reconciler.cancel_all([record.reminder_job_id])
            return Evaluation({"reminder_job_id": None}, cancelled=cancelled)

        created_at = ctx.parse(record.created_at)
        if created_at is None:
            return Evaluation({})

        plan = ReminderPlan(
            kind="settlement_due",
            offset_days=-SETTLEMENT_DUE_DAYS,
            fire_at=ctx.push_forward(created_at, SETTLEMENT_DUE_DAYS),
            deadline=created_at,
            message=ReminderMessage(
                title_key="notify.split.title",
                body_key="notify.split.body",
                params={
                    "split_group_id": record.split_group_id,
                    "amount": float(record.amount),
                    "receiver_id": record.receiver_id,
                },
            ),
            analytics_event=self.analytics_event,
            data={"splitGroupId": record.split_group_id, "settlementId": record.id},
        )
        scheduled = await reconciler.schedule(record.payer_id, [plan])
        await reconciler.supersede([record.reminder_job_id], scheduled)

        return Evaluation({"reminder_job_id": scheduled[0].job_ref}, scheduled=scheduled)


def default_policies() -> list[ReminderPolicy]:
    return [ReceiptPolicy(), GiftCardPolicy(), SubscriptionPolicy(), SettlementPolicy()]

"""Recurring-charge ledger pass.

Posts an expense for every subscription charge that has come due and moves
the subscription to its next charge date.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from fullkoll.db.models import Subscription
from fullkoll.db.store import RecordFilter, RecordStore
from fullkoll.utils.constants import BILLING_INTERVALS, SUBSCRIPTIONS, TRANSACTIONS
from fullkoll.utils.errors import StorageError
from fullkoll.utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)


def advance_charge_date(charge_at: datetime, interval: str | None) -> datetime:
    """Get the charge date one billing interval after `charge_at`.

    Months and years are calendar steps; a day that does not exist in the
    target month is clamped to its last day (Jan 31 -> Feb 28).

    Examples:
        weekly:  2025-01-01 -> 2025-01-08
        monthly: 2025-01-31 -> 2025-02-28
        yearly:  2024-02-29 -> 2025-02-28
    """
    interval = (interval or "monthly").strip().lower()
    if interval not in BILLING_INTERVALS:
        logger.warning(f"Unknown billing interval {interval!r}, charging monthly")
        interval = "monthly"

    if interval == "weekly":
        return charge_at + timedelta(days=7)
    elif interval == "yearly":
        return charge_at + relativedelta(years=1)
    return charge_at + relativedelta(months=1)


@dataclass
class ChargeSummary:
    status: str = "ok"  # ok | skipped | error
    processed: int = 0
    posted: int = 0
    error: str | None = None


class ChargeProcessor:
    """Runs the ledger pass against a record store."""

    def __init__(self, store: RecordStore, tz: str = "UTC"):
        self.store = store
        self.tz = tz

    async def run(self, now: datetime | None = None, enabled: bool = True) -> ChargeSummary:
        """Process every unpaused subscription whose charge is at or before now."""
        if not enabled:
            logger.info("Charge pass disabled, skipping")
            return ChargeSummary(status="skipped")

        if now is None:
            now = datetime.now(ZoneInfo(self.tz))

        summary = ChargeSummary()
        try:
            subscriptions = await self.store.list(
                SUBSCRIPTIONS, RecordFilter(equals={"is_paused": False})
            )
            for subscription in subscriptions:
                charge_at = parse_timestamp(subscription.next_charge_at, self.tz)
                if charge_at is None or charge_at > now:
                    continue
                if await self.process_charge(subscription, charge_at, now):
                    summary.posted += 1
                summary.processed += 1
        except StorageError as e:
            logger.error(f"Charge pass failed: {e}")
            summary.status = "error"
            summary.error = str(e)
            return summary

        logger.info(f"Charge pass done: {summary.processed} charges, {summary.posted} posted")
        return summary

    async def process_charge(
        self, subscription: Subscription, charge_at: datetime, now: datetime
    ) -> bool:
        """Post the charge (when linked to a budget) and advance the subscription.

        Returns:
            True if a ledger transaction was written
        """
        posted = False
        if (
            subscription.budget_id
            and subscription.budget_category_id
            and subscription.amount_per_period is not None
        ):
            await self.store.insert(
                TRANSACTIONS,
                {
                    "budget_id": subscription.budget_id,
                    "category_id": subscription.budget_category_id,
                    "type": "expense",
                    "description": subscription.service_name,
                    "amount": subscription.amount_per_period,
                    "date": now.isoformat(),
                    "source": "subscription",
                    "source_id": subscription.id,
                },
            )
            posted = True

        next_charge = advance_charge_date(charge_at, subscription.billing_interval)
        await self.store.update(
            SUBSCRIPTIONS,
            subscription.id,
            {"next_charge_at": next_charge.isoformat(), "updated_at": now.isoformat()},
        )
        logger.info(
            f"Charged subscription {subscription.id} ({subscription.service_name}), "
            f"next charge {next_charge.isoformat()}"
        )
        return posted

"""Data models.

Deadline and charge fields hold the raw stored value; the scheduling engine
parses them and drops what it cannot read. Flags are strict booleans, coerced
by the storage adapter.
"""

from dataclasses import dataclass, field


@dataclass
class Receipt:
    """A purchase receipt with up to four named deadlines."""

    owner_id: str
    store: str
    return_deadline: str | None = None
    exchange_deadline: str | None = None
    warranty_expires: str | None = None
    refund_deadline: str | None = None
    reminders_enabled: bool = False
    archived: bool = False
    reminder_jobs: dict[str, list[str]] = field(default_factory=dict)
    reminder1_at: str | None = None
    reminder2_at: str | None = None
    id: str | None = None


@dataclass
class GiftCard:
    """A gift card with a single expiry."""

    owner_id: str
    brand: str
    expires_at: str | None = None
    current_balance: float = 0.0
    reminders_enabled: bool = False
    archived: bool = False
    reminder_job_ids: list[str] = field(default_factory=list)
    reminder1_at: str | None = None
    reminder2_at: str | None = None
    id: str | None = None


@dataclass
class Subscription:
    """A recurring charge (autogiro) with an optional trial period."""

    owner_id: str
    service_name: str
    next_charge_at: str | None = None
    reminder_before_charge_days: str | None = None  # e.g. "7,1"
    is_paused: bool = False
    trial_ends_at: str | None = None
    reminder_on_trial_end: bool = False
    amount_per_period: float | None = None
    currency: str | None = None
    billing_interval: str = "monthly"
    budget_id: str | None = None
    budget_category_id: str | None = None
    charge_reminder_job_ids: list[str] = field(default_factory=list)
    trial_reminder_job_id: str | None = None
    updated_at: str | None = None
    id: str | None = None


@dataclass
class Settlement:
    """A debt between two members of a split group."""

    split_group_id: str
    payer_id: str
    receiver_id: str
    amount: float
    status: str  # open | settled
    created_at: str | None = None
    reminder_job_id: str | None = None
    id: str | None = None


@dataclass
class LedgerTransaction:
    """An expense posted to a budget by the recurring-charge pass."""

    budget_id: str
    category_id: str
    description: str
    amount: float
    date: str
    type: str = "expense"
    source: str = "subscription"
    source_id: str | None = None
    id: str | None = None


@dataclass
class NotificationLogEntry:
    """Audit trail of scheduled reminders."""

    user_id: str
    resource_type: str
    resource_id: str
    title: str
    body: str
    scheduled_at: str
    created_at: str
    title_key: str | None = None
    body_key: str | None = None
    params: dict = field(default_factory=dict)
    channel: str = "push"
    payload: dict = field(default_factory=dict)
    job_ref: str | None = None
    id: str | None = None

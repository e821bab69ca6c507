"""Tests for the reminder pass orchestration."""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from fullkoll.db.models import GiftCard, Receipt, Settlement, Subscription
from fullkoll.db.store import InMemoryStore
from fullkoll.engine.orchestrator import ReminderOrchestrator
from fullkoll.engine.schedule import EvaluationMode
from fullkoll.notify.transport import LoggingTransport
from fullkoll.utils.errors import StorageError

UTC = ZoneInfo("UTC")
NOW = datetime(2026, 3, 15, 6, 0, tzinfo=UTC)


class BrokenStore(InMemoryStore):
    """Fails listing or updating one domain."""

    def __init__(self, fail_list: str | None = None, fail_update: str | None = None):
        super().__init__()
        self.fail_list = fail_list
        self.fail_update = fail_update

    async def list(self, domain, record_filter=None):
        if domain == self.fail_list:
            raise StorageError(f"{domain} table unavailable")
        return await super().list(domain, record_filter)

    async def update(self, domain, record_id, patch):
        if domain == self.fail_update:
            raise StorageError(f"{domain} is read-only")
        await super().update(domain, record_id, patch)


def seed(store: InMemoryStore) -> None:
    store.add(
        "receipts",
        Receipt(
            owner_id="42",
            store="ICA",
            return_deadline=(NOW + timedelta(days=10)).isoformat(),
            reminders_enabled=True,
        ),
    )
    store.add(
        "giftcards",
        GiftCard(
            owner_id="42",
            brand="Åhléns",
            expires_at=(NOW + timedelta(days=40)).isoformat(),
            current_balance=500,
            reminders_enabled=True,
        ),
    )
    store.add(
        "subscriptions",
        Subscription(
            owner_id="42",
            service_name="Netflix",
            next_charge_at=(NOW + timedelta(days=1)).isoformat(),
            reminder_before_charge_days="7,1",
        ),
    )
    store.add(
        "settlements",
        Settlement(
            split_group_id="Fjällresan",
            payer_id="42",
            receiver_id="Anna",
            amount=350.0,
            status="open",
            created_at=NOW.isoformat(),
        ),
    )


def run(orchestrator: ReminderOrchestrator, **kwargs):
    return asyncio.run(orchestrator.run(now=NOW, **kwargs))


def test_full_pass_persists_patches(transport):
    store = InMemoryStore()
    seed(store)
    orchestrator = ReminderOrchestrator(store, transport)

    summary = run(orchestrator)

    assert summary.status == "ok"
    assert summary.processed == 4
    assert summary.failed == 0
    # receipt 2 + gift card 2 + subscription 1 + settlement 1
    assert summary.scheduled == 6
    assert len(transport.schedule_calls) == 6

    receipt = store.all("receipts")[0]
    assert len(receipt.reminder_jobs["return_deadline"]) == 2
    assert receipt.reminder1_at == "2026-03-18T09:00:00+00:00"
    assert len(store.all("giftcards")[0].reminder_job_ids) == 2
    assert len(store.all("subscriptions")[0].charge_reminder_job_ids) == 1
    assert store.all("settlements")[0].reminder_job_id is not None

    # Every persisted ref came from a schedule call of this pass
    scheduled_ids = {n.id for n in transport.list_scheduled()}
    assert set(receipt.reminder_jobs["return_deadline"]) <= scheduled_ids


def test_pass_writes_notification_log(transport):
    store = InMemoryStore()
    seed(store)

    run(ReminderOrchestrator(store, transport))

    entries = store.all("notifications_log")
    assert len(entries) == 6
    settlement_entry = next(e for e in entries if e.resource_type == "split")
    assert settlement_entry.user_id == "42"
    assert settlement_entry.title == "Obetald del i Fjällresan"
    assert settlement_entry.payload["analyticsEvent"] == "split_payment_reminder_fired"
    assert settlement_entry.scheduled_at == "2026-03-18T09:00:00+00:00"


def test_notification_log_can_be_disabled(transport):
    store = InMemoryStore()
    seed(store)

    run(ReminderOrchestrator(store, transport, log_notifications=False))

    assert store.all("notifications_log") == []


def test_disabled_pass_is_skipped(transport):
    store = InMemoryStore()
    seed(store)

    summary = run(ReminderOrchestrator(store, transport), enabled=False)

    assert summary.status == "skipped"
    assert transport.schedule_calls == []
    assert store.all("receipts")[0].reminder_jobs == {}


def test_transport_failure_skips_only_that_record(failing_transport):
    store = InMemoryStore()
    good = store.add(
        "receipts",
        Receipt(
            owner_id="42",
            store="ICA",
            return_deadline=(NOW + timedelta(days=10)).isoformat(),
            reminders_enabled=True,
        ),
    )
    bad = store.add(
        "receipts",
        Receipt(
            owner_id="unreachable",
            store="Coop",
            return_deadline=(NOW + timedelta(days=10)).isoformat(),
            reminders_enabled=True,
            reminder_jobs={"return_deadline": ["job_old"]},
        ),
    )

    summary = run(ReminderOrchestrator(store, failing_transport))

    assert summary.status == "ok"
    assert summary.domains["receipts"].failed == 1
    assert summary.domains["receipts"].processed == 1
    assert len(store.get("receipts", good.id).reminder_jobs["return_deadline"]) == 2
    # No partial refs persisted for the failed record
    assert store.get("receipts", bad.id).reminder_jobs == {"return_deadline": ["job_old"]}


def test_storage_failure_on_update_marks_pass_failed(transport):
    store = BrokenStore(fail_update="settlements")
    seed(store)

    summary = run(ReminderOrchestrator(store, transport))

    assert summary.status == "error"
    assert "read-only" in summary.error
    assert summary.domains["settlements"].error == summary.error
    # Writes made before the failure are not rolled back
    assert len(store.all("receipts")[0].reminder_jobs["return_deadline"]) == 2
    assert store.all("settlements")[0].reminder_job_id is None
    # Counters of the failed domain are kept
    assert summary.domains["settlements"].processed == 1
    assert summary.domains["settlements"].updated == 0
    assert summary.processed == 4


def test_storage_failure_stops_later_records_of_domain(transport):
    store = BrokenStore(fail_update="receipts")
    for store_name in ("ICA", "Coop", "Lidl"):
        store.add(
            "receipts",
            Receipt(
                owner_id="42",
                store=store_name,
                return_deadline=(NOW + timedelta(days=10)).isoformat(),
                reminders_enabled=True,
            ),
        )

    summary = run(ReminderOrchestrator(store, transport, max_concurrency=1))

    assert summary.status == "error"
    assert summary.domains["receipts"].processed == 1
    assert summary.domains["receipts"].error == "receipts is read-only"
    # Only the first record reached the transport before the pass halted
    assert len(transport.schedule_calls) == 2


def test_storage_failure_halts_other_domains(transport):
    store = BrokenStore(fail_update="receipts")
    store.add(
        "receipts",
        Receipt(
            owner_id="42",
            store="ICA",
            return_deadline=(NOW + timedelta(days=10)).isoformat(),
            reminders_enabled=True,
        ),
    )
    for brand in ("Åhléns", "Clas Ohlson", "Stadium", "Systembolaget", "Apoteket"):
        store.add(
            "giftcards",
            GiftCard(
                owner_id="42",
                brand=brand,
                expires_at=(NOW + timedelta(days=40)).isoformat(),
                reminders_enabled=True,
            ),
        )

    summary = run(ReminderOrchestrator(store, transport, max_concurrency=1))

    assert summary.status == "error"
    assert summary.domains["giftcards"].processed == 0
    assert all(card.reminder_job_ids == [] for card in store.all("giftcards"))
    assert store.all("notifications_log") == []


def test_storage_failure_on_list(transport):
    store = BrokenStore(fail_list="giftcards")
    seed(store)

    summary = run(ReminderOrchestrator(store, transport))

    assert summary.status == "error"
    assert summary.error == "giftcards table unavailable"
    assert summary.domains["giftcards"].processed == 0
    assert summary.domains["receipts"].error is None


def test_continuous_pass_cancels_disabled_records(transport):
    store = InMemoryStore()
    store.add(
        "giftcards",
        GiftCard(
            owner_id="42",
            brand="Åhléns",
            expires_at=(NOW + timedelta(days=40)).isoformat(),
            reminders_enabled=False,
            reminder_job_ids=["job_a"],
        ),
    )
    store.add(
        "giftcards",
        GiftCard(owner_id="42", brand="Archived", archived=True, reminder_job_ids=["job_b"]),
    )

    summary = run(ReminderOrchestrator(store, transport))

    assert transport.cancel_calls == ["job_a"]
    assert summary.domains["giftcards"].processed == 1
    cards = store.all("giftcards")
    assert cards[0].reminder_job_ids == []
    assert cards[1].reminder_job_ids == ["job_b"]


def test_daily_batch_pass_filters_at_query_layer(transport):
    store = InMemoryStore()
    store.add(
        "receipts",
        Receipt(
            owner_id="42",
            store="ICA",
            return_deadline="2026-03-22T12:00:00+00:00",
            reminders_enabled=True,
        ),
    )
    store.add(
        "receipts",
        Receipt(
            owner_id="42",
            store="Coop",
            return_deadline="2026-06-01T12:00:00+00:00",
            reminders_enabled=True,
        ),
    )
    store.add(
        "receipts",
        Receipt(
            owner_id="42",
            store="Lidl",
            return_deadline="2026-03-16T12:00:00+00:00",
            reminders_enabled=False,
        ),
    )

    orchestrator = ReminderOrchestrator(store, transport, mode=EvaluationMode.DAILY_BATCH)
    summary = run(orchestrator)

    assert summary.domains["receipts"].processed == 1
    assert [call["fire_at"] for call in transport.schedule_calls] == [
        datetime(2026, 3, 15, 0, 0, tzinfo=UTC)
    ]


def test_local_timezone_reminder_hour(transport):
    store = InMemoryStore(tz="Europe/Stockholm")
    store.add(
        "settlements",
        Settlement(
            split_group_id="Middag",
            payer_id="42",
            receiver_id="Erik",
            amount=120.0,
            status="open",
            created_at="2026-03-14T20:00:00",
        ),
    )

    orchestrator = ReminderOrchestrator(
        store, transport, tz="Europe/Stockholm", reminder_hour=8, log_notifications=False
    )
    run(orchestrator)

    fire_at = transport.schedule_calls[0]["fire_at"]
    assert fire_at.isoformat() == "2026-03-17T08:00:00+01:00"


class SlowTransport(LoggingTransport):
    """Holds every schedule call open briefly and tracks the peak in flight."""

    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.peak = 0

    async def schedule(self, user_id, fire_at, title, body, metadata) -> str:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().schedule(user_id, fire_at, title, body, metadata)
        finally:
            self.in_flight -= 1


def test_transport_fan_out_is_bounded():
    store = InMemoryStore()
    for n in range(20):
        store.add(
            "giftcards",
            GiftCard(
                owner_id="42",
                brand=f"Butik {n}",
                expires_at=(NOW + timedelta(days=40)).isoformat(),
                reminders_enabled=True,
            ),
        )
    transport = SlowTransport()

    summary = run(ReminderOrchestrator(store, transport, max_concurrency=3))

    assert summary.domains["giftcards"].processed == 20
    assert summary.scheduled == 40
    assert transport.peak == 3

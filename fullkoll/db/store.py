"""Storage interface and the in-memory adapter."""

import copy
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from itertools import count
from typing import Any, Protocol

from fullkoll.db.models import (
    GiftCard,
    LedgerTransaction,
    NotificationLogEntry,
    Receipt,
    Settlement,
    Subscription,
)
from fullkoll.utils.constants import (
    GIFTCARDS,
    NOTIFICATIONS_LOG,
    RECEIPTS,
    SETTLEMENTS,
    SUBSCRIPTIONS,
    TRANSACTIONS,
)
from fullkoll.utils.errors import StorageError
from fullkoll.utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)

MODELS: dict[str, type] = {
    RECEIPTS: Receipt,
    GIFTCARDS: GiftCard,
    SUBSCRIPTIONS: Subscription,
    SETTLEMENTS: Settlement,
    TRANSACTIONS: LedgerTransaction,
    NOTIFICATIONS_LOG: NotificationLogEntry,
}


def model_fields(domain: str) -> set[str]:
    """Attribute names of the model stored in `domain`."""
    try:
        return {f.name for f in fields(MODELS[domain])}
    except KeyError:
        raise StorageError(f"Unknown domain: {domain}") from None


@dataclass
class RecordFilter:
    """Predicates a store applies when listing records.

    `window_fields` matches when any of the named timestamp fields falls in
    the half-open `window` [start, end).
    """

    equals: dict[str, Any] = field(default_factory=dict)
    not_equals: dict[str, Any] = field(default_factory=dict)
    window_fields: list[str] = field(default_factory=list)
    window: tuple[datetime, datetime] | None = None

    def field_names(self) -> set[str]:
        return set(self.equals) | set(self.not_equals) | set(self.window_fields)

    def matches(self, record: object, tz: str) -> bool:
        for name, value in self.equals.items():
            if getattr(record, name) != value:
                return False
        for name, value in self.not_equals.items():
            if getattr(record, name) == value:
                return False
        if self.window_fields and self.window:
            start, end = self.window
            for name in self.window_fields:
                instant = parse_timestamp(getattr(record, name), tz)
                if instant is not None and start <= instant < end:
                    return True
            return False
        return True


class RecordStore(Protocol):
    """Generic record storage consumed by the engine."""

    async def list(self, domain: str, record_filter: RecordFilter | None = None) -> list:
        ...

    async def update(self, domain: str, record_id: str, patch: dict[str, Any]) -> None:
        ...

    async def insert(self, domain: str, values: dict[str, Any]) -> str:
        ...


class InMemoryStore:
    """Dict-backed store for local runs and tests."""

    def __init__(self, tz: str = "UTC"):
        self.tz = tz
        self._records: dict[str, dict[str, object]] = {domain: {} for domain in MODELS}
        self._ids = count(1)

    def add(self, domain: str, record: object) -> object:
        """Seed a record, assigning an id when it has none."""
        model_fields(domain)
        if getattr(record, "id", None) is None:
            record.id = str(next(self._ids))  # type: ignore[attr-defined]
        self._records[domain][record.id] = record  # type: ignore[attr-defined]
        return record

    def get(self, domain: str, record_id: str) -> object | None:
        model_fields(domain)
        return self._records[domain].get(record_id)

    def all(self, domain: str) -> list:
        model_fields(domain)
        return list(self._records[domain].values())

    async def list(self, domain: str, record_filter: RecordFilter | None = None) -> list:
        known = model_fields(domain)
        record_filter = record_filter or RecordFilter()
        unknown = record_filter.field_names() - known
        if unknown:
            raise StorageError(f"Unknown fields for {domain}: {sorted(unknown)}")

        # Callers get copies; changes only land through update()
        return [
            copy.deepcopy(record)
            for record in self._records[domain].values()
            if record_filter.matches(record, self.tz)
        ]

    async def update(self, domain: str, record_id: str, patch: dict[str, Any]) -> None:
        known = model_fields(domain)
        record = self._records[domain].get(record_id)
        if record is None:
            raise StorageError(f"{domain} record {record_id} not found")

        unknown = set(patch) - known
        if unknown:
            raise StorageError(f"Unknown fields for {domain}: {sorted(unknown)}")

        for name, value in patch.items():
            setattr(record, name, copy.deepcopy(value))

    async def insert(self, domain: str, values: dict[str, Any]) -> str:
        model = MODELS.get(domain)
        if model is None:
            raise StorageError(f"Unknown domain: {domain}")
        try:
            record = model(**values)
        except TypeError as e:
            raise StorageError(f"Invalid {domain} record: {e}") from e
        self.add(domain, record)
        return record.id  # type: ignore[attr-defined]

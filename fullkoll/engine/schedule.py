"""Deadline extraction, offset projection and due filtering.

Everything here is pure: the same record, offsets and `now` always give the
same reminder instants.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from fullkoll.utils.constants import DEFAULT_REMINDER_HOUR
from fullkoll.utils.time_utils import at_local_time, day_window, from_utc, parse_timestamp

LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class EvaluationMode(str, Enum):
    """How fire instants are normalised and admitted.

    CONTINUOUS: fire at the reminder hour, admit anything strictly after now.
    DAILY_BATCH: fire at local midnight, admit only today's bucket.
    """

    CONTINUOUS = "continuous"
    DAILY_BATCH = "daily_batch"


@dataclass
class DeadlineCandidate:
    """A labelled deadline read from a record."""

    kind: str
    instant: datetime


@dataclass
class ReminderMessage:
    """Structured message; rendered to text by the presentation layer."""

    title_key: str
    body_key: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReminderPlan:
    """One reminder that survived the due filter."""

    kind: str
    offset_days: int
    fire_at: datetime
    deadline: datetime
    message: ReminderMessage
    analytics_event: str
    data: dict[str, Any] = field(default_factory=dict)

    def metadata(self) -> dict[str, Any]:
        """Payload handed to the transport alongside the message."""
        return {
            "kind": self.kind,
            "deadline": self.deadline.isoformat(),
            "offsetDays": self.offset_days,
            **self.data,
            "analyticsEvent": self.analytics_event,
        }


@dataclass
class ScheduledReminder:
    """A plan the transport accepted."""

    job_ref: str
    plan: ReminderPlan
    title: str
    body: str


def extract_deadlines(
    record: object, field_names: Iterable[str], tz: str
) -> list[DeadlineCandidate]:
    """Read the named timestamp fields of a record, in the given order.

    Missing or unparseable fields are skipped.
    """
    candidates = []
    for name in field_names:
        instant = parse_timestamp(getattr(record, name, None), tz)
        if instant is not None:
            candidates.append(DeadlineCandidate(kind=name, instant=instant))
    return candidates


def parse_offsets(value: str | None, default: Iterable[int]) -> list[int]:
    """Parse a comma-separated list of day offsets ("7,1").

    Each entry is read from its leading digits ("7 dagar" is 7); entries
    without any are dropped. A missing value gives `default`.
    """
    if value is None:
        return list(default)

    offsets = []
    for part in value.split(","):
        match = LEADING_INT.match(part)
        if match:
            offsets.append(int(match.group(1)))
    return offsets


def project_offset(
    deadline: datetime,
    offset_days: int,
    mode: EvaluationMode,
    tz: str,
    hour: int = DEFAULT_REMINDER_HOUR,
) -> datetime:
    """Compute the fire instant `offset_days` calendar days before a deadline.

    Args:
        deadline: Deadline instant (timezone-aware)
        offset_days: Lead time; negative values push past the deadline
        mode: Continuous fires at `hour`:00 local, daily batch at local midnight
        tz: Local timezone the day arithmetic happens in
        hour: Reminder hour for continuous mode

    Returns:
        Fire instant in the local timezone
    """
    day = from_utc(deadline, tz).date() - timedelta(days=offset_days)
    if mode is EvaluationMode.DAILY_BATCH:
        return at_local_time(day, 0, tz)
    return at_local_time(day, hour, tz)


def is_due(fire_at: datetime, now: datetime, mode: EvaluationMode, tz: str) -> bool:
    """Check whether a fire instant should be scheduled in this pass."""
    if mode is EvaluationMode.DAILY_BATCH:
        start, end = day_window(now, tz)
        return start <= fire_at < end
    return fire_at > now


@dataclass(frozen=True)
class EvaluationContext:
    """The clock and normalisation settings of one evaluation pass."""

    now: datetime
    mode: EvaluationMode = EvaluationMode.CONTINUOUS
    tz: str = "UTC"
    reminder_hour: int = DEFAULT_REMINDER_HOUR

    @classmethod
    def create(
        cls,
        now: datetime | None = None,
        mode: EvaluationMode = EvaluationMode.CONTINUOUS,
        tz: str = "UTC",
        reminder_hour: int = DEFAULT_REMINDER_HOUR,
    ) -> "EvaluationContext":
        if now is None:
            now = datetime.now(ZoneInfo(tz))
        elif now.tzinfo is None:
            now = now.replace(tzinfo=ZoneInfo(tz))
        return cls(now=now, mode=mode, tz=tz, reminder_hour=reminder_hour)

    @property
    def window(self) -> tuple[datetime, datetime]:
        """Today's local [midnight, next midnight)."""
        return day_window(self.now, self.tz)

    def parse(self, value: object) -> datetime | None:
        return parse_timestamp(value, self.tz)

    def extract(self, record: object, field_names: Iterable[str]) -> list[DeadlineCandidate]:
        return extract_deadlines(record, field_names, self.tz)

    def project(self, deadline: datetime, offset_days: int) -> datetime:
        return project_offset(deadline, offset_days, self.mode, self.tz, self.reminder_hour)

    def is_due(self, fire_at: datetime) -> bool:
        return is_due(fire_at, self.now, self.mode, self.tz)

    def push_forward(self, instant: datetime, days: int) -> datetime:
        """A due date `days` after `instant` at the reminder hour, never filtered."""
        return project_offset(
            instant, -days, EvaluationMode.CONTINUOUS, self.tz, self.reminder_hour
        )

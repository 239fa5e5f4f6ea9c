"""Domain model for scheduled reminders."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Literal, Mapping

from ..utils.datetime import ensure_utc, now_utc
from .schedule import OnceSchedule, Schedule, ScheduleError, is_recurring

if TYPE_CHECKING:
    from ..utils.recurrence import RecurrenceCalculator


ReminderStatus = Literal["scheduled", "sent", "cancelled"]

STATUS_SCHEDULED: ReminderStatus = "scheduled"
STATUS_SENT: ReminderStatus = "sent"
STATUS_CANCELLED: ReminderStatus = "cancelled"
REMINDER_STATUSES: tuple[str, ...] = (STATUS_SCHEDULED, STATUS_SENT, STATUS_CANCELLED)


@dataclass(frozen=True, slots=True)
class TextSpan:
    """A formatting annotation over ``text`` (Telegram message entity shape)."""

    offset: int
    length: int
    style: str
    url: str | None = None
    custom_emoji_id: str | None = None
    language: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"offset": self.offset, "length": self.length, "style": self.style}
        for key in ("url", "custom_emoji_id", "language"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TextSpan":
        style = data.get("style") or data.get("type")
        if not isinstance(style, str) or not style:
            raise ValueError(f"text span without a style: {dict(data)!r}")
        return cls(
            offset=int(data["offset"]),
            length=int(data["length"]),
            style=style,
            url=data.get("url"),
            custom_emoji_id=data.get("custom_emoji_id"),
            language=data.get("language"),
        )


@dataclass(slots=True)
class LeaseInfo:
    owner_id: str
    acquired_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(slots=True)
class Reminder:
    """A notification delivered to ``owner_chat`` at ``next_run_at``."""

    id: str
    owner_chat: int
    text: str
    timezone: str
    schedule: Schedule
    next_run_at: datetime | None
    status: ReminderStatus = STATUS_SCHEDULED
    spans: tuple[TextSpan, ...] = ()
    last_run_at: datetime | None = None
    lock: LeaseInfo | None = None
    created_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return is_recurring(self.schedule)

    def is_due(self, now: datetime) -> bool:
        return self.status == STATUS_SCHEDULED and self.next_run_at is not None and self.next_run_at <= now

    def is_locked(self, now: datetime) -> bool:
        return self.lock is not None and self.lock.is_active(now)


def create_reminder(
    *,
    owner_chat: int,
    text: str,
    calculator: RecurrenceCalculator,
    schedule: Schedule | None = None,
    timezone: str | None = None,
    next_run_at: datetime | None = None,
    spans: Iterable[TextSpan] = (),
    now: datetime | None = None,
) -> Reminder:
    """Factory for new ``scheduled`` reminders.

    When ``next_run_at`` is omitted the first occurrence is computed from the
    schedule; a one-off reminder must always be given an explicit instant.
    """

    schedule = schedule or OnceSchedule()
    created_at = ensure_utc(now) if now is not None else now_utc()
    zone = calculator.zone(timezone)
    if next_run_at is None:
        next_run_at = calculator.next_run(schedule, zone.key, created_at)
        if next_run_at is None:
            raise ScheduleError("a one-off reminder needs an explicit next_run_at")
    return Reminder(
        id=uuid.uuid4().hex,
        owner_chat=owner_chat,
        text=text,
        timezone=zone.key,
        schedule=schedule,
        next_run_at=ensure_utc(next_run_at),
        spans=tuple(spans),
        created_at=created_at,
    )

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable

from ..models.reminder import LeaseInfo, Reminder, ReminderStatus, TextSpan
from ..models.schedule import OnceSchedule, Schedule, ScheduleError, schedule_from_dict, schedule_to_dict

logger = logging.getLogger("telegram_reminder_bot.storage")


class StoreError(RuntimeError):
    """Raised when the persistent store cannot complete an operation."""


def dump_schedule(schedule: Schedule) -> str:
    return json.dumps(schedule_to_dict(schedule), ensure_ascii=False)


def load_schedule(raw: str | None, *, reminder_id: str) -> Schedule:
    """Decode a stored schedule; undecodable definitions degrade to ``once``."""

    if not raw:
        return OnceSchedule()
    try:
        return schedule_from_dict(json.loads(raw))
    except (ScheduleError, ValueError) as exc:
        logger.warning("schedule_decode_failed id=%s error=%s", reminder_id, exc)
        return OnceSchedule()


def dump_spans(spans: Iterable[TextSpan]) -> str:
    return json.dumps([span.to_dict() for span in spans], ensure_ascii=False)


def load_spans(raw: str | None, *, reminder_id: str = "-") -> tuple[TextSpan, ...]:
    """Decode stored spans, dropping entries that are not valid entities."""

    if not raw:
        return ()
    spans = []
    for item in json.loads(raw):
        try:
            spans.append(TextSpan.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("span_decode_failed id=%s error=%s", reminder_id, exc)
    return tuple(spans)


class ReminderStore(ABC):
    """Persistence contract shared by the dispatcher and the action handler.

    Every mutating method is a single conditional update on one record and
    returns whether the record matched.
    """

    @abstractmethod
    async def insert(self, reminder: Reminder) -> Reminder:
        ...

    @abstractmethod
    async def get(self, reminder_id: str, *, owner_chat: int | None = None) -> Reminder | None:
        ...

    @abstractmethod
    async def find_due(self, now: datetime, limit: int) -> list[Reminder]:
        """Scheduled reminders with ``next_run_at <= now``, oldest first, at most ``limit``."""

    @abstractmethod
    async def update_state(
        self,
        reminder_id: str,
        *,
        status: ReminderStatus,
        next_run_at: datetime | None,
        last_run_at: datetime | None = None,
        owner_chat: int | None = None,
        unless_locked_at: datetime | None = None,
        unless_cancelled: bool = False,
    ) -> bool:
        """Set status and next run; ``last_run_at`` is left alone when ``None``.

        ``owner_chat`` restricts the update to that owner. ``unless_locked_at``
        skips records holding a lease that is still active at that instant.
        ``unless_cancelled`` leaves deleted reminders untouched.
        """

    @abstractmethod
    async def try_lock_reminder(
        self, reminder_id: str, owner_id: str, now: datetime, expires_at: datetime
    ) -> bool:
        """Lease a due reminder unless another owner holds an unexpired lease."""

    @abstractmethod
    async def unlock_reminder(self, reminder_id: str, owner_id: str) -> bool:
        ...

    @abstractmethod
    async def try_acquire_named_lease(
        self, key: str, owner_id: str, now: datetime, expires_at: datetime
    ) -> bool:
        """Create or take over the lease ``key`` (upsert semantics)."""

    @abstractmethod
    async def expire_named_lease(self, key: str, owner_id: str, at: datetime) -> bool:
        ...

    @abstractmethod
    async def get_named_lease(self, key: str) -> LeaseInfo | None:
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        ...

    async def close(self) -> None:
        return None

    def reminder_leases(self) -> "ReminderLeaseBackend":
        return ReminderLeaseBackend(self)

    def named_leases(self) -> "NamedLeaseBackend":
        return NamedLeaseBackend(self)


class ReminderLeaseBackend:
    """Per-reminder leases kept in the reminder record itself."""

    def __init__(self, store: ReminderStore) -> None:
        self._store = store

    async def try_acquire(self, key: str, owner_id: str, now: datetime, expires_at: datetime) -> bool:
        return await self._store.try_lock_reminder(key, owner_id, now, expires_at)

    async def release(self, key: str, owner_id: str, now: datetime) -> bool:
        return await self._store.unlock_reminder(key, owner_id)


class NamedLeaseBackend:
    """Process-wide leases keyed by name; releasing lets the lease lapse."""

    def __init__(self, store: ReminderStore) -> None:
        self._store = store

    async def try_acquire(self, key: str, owner_id: str, now: datetime, expires_at: datetime) -> bool:
        return await self._store.try_acquire_named_lease(key, owner_id, now, expires_at)

    async def release(self, key: str, owner_id: str, now: datetime) -> bool:
        return await self._store.expire_named_lease(key, owner_id, now)


def row_payload(reminder: Reminder) -> dict[str, Any]:
    """Flatten a reminder into column values (timestamps left as datetimes)."""

    lock = reminder.lock
    return {
        "id": reminder.id,
        "owner_chat": reminder.owner_chat,
        "text": reminder.text,
        "spans": dump_spans(reminder.spans),
        "timezone": reminder.timezone,
        "schedule": dump_schedule(reminder.schedule),
        "status": reminder.status,
        "next_run_at": reminder.next_run_at,
        "last_run_at": reminder.last_run_at,
        "lock_owner": lock.owner_id if lock else None,
        "lock_acquired_at": lock.acquired_at if lock else None,
        "lock_expires_at": lock.expires_at if lock else None,
        "created_at": reminder.created_at,
    }

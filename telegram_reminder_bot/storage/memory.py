"""In-process store used by tests and single-instance deployments.

Each operation runs under one ``asyncio.Lock``, which makes the conditional
updates atomic within the process. Callers only ever see copies.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime

from ..models.reminder import STATUS_CANCELLED, STATUS_SCHEDULED, LeaseInfo, Reminder, ReminderStatus
from ..utils.datetime import ensure_utc
from .base import ReminderStore, StoreError


class MemoryReminderStore(ReminderStore):
    def __init__(self) -> None:
        self._reminders: dict[str, Reminder] = {}
        self._leases: dict[str, LeaseInfo] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("store is closed")

    async def insert(self, reminder: Reminder) -> Reminder:
        async with self._lock:
            self._check_open()
            if reminder.id in self._reminders:
                raise StoreError(f"reminder {reminder.id} already exists")
            self._reminders[reminder.id] = copy.deepcopy(reminder)
            return copy.deepcopy(reminder)

    async def get(self, reminder_id: str, *, owner_chat: int | None = None) -> Reminder | None:
        async with self._lock:
            self._check_open()
            reminder = self._reminders.get(reminder_id)
            if reminder is None or (owner_chat is not None and reminder.owner_chat != owner_chat):
                return None
            return copy.deepcopy(reminder)

    async def find_due(self, now: datetime, limit: int) -> list[Reminder]:
        now = ensure_utc(now)
        async with self._lock:
            self._check_open()
            due = [reminder for reminder in self._reminders.values() if reminder.is_due(now)]
            due.sort(key=lambda reminder: reminder.next_run_at)
            return [copy.deepcopy(reminder) for reminder in due[: max(0, limit)]]

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
        async with self._lock:
            self._check_open()
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                return False
            if owner_chat is not None and reminder.owner_chat != owner_chat:
                return False
            if unless_locked_at is not None and reminder.is_locked(ensure_utc(unless_locked_at)):
                return False
            if unless_cancelled and reminder.status == STATUS_CANCELLED:
                return False
            reminder.status = status
            reminder.next_run_at = ensure_utc(next_run_at) if next_run_at else None
            if last_run_at is not None:
                reminder.last_run_at = ensure_utc(last_run_at)
            return True

    async def try_lock_reminder(
        self, reminder_id: str, owner_id: str, now: datetime, expires_at: datetime
    ) -> bool:
        now = ensure_utc(now)
        async with self._lock:
            self._check_open()
            reminder = self._reminders.get(reminder_id)
            if reminder is None or reminder.status != STATUS_SCHEDULED or not reminder.is_due(now):
                return False
            lock = reminder.lock
            if lock is not None and lock.is_active(now) and lock.owner_id != owner_id:
                return False
            reminder.lock = LeaseInfo(owner_id=owner_id, acquired_at=now, expires_at=ensure_utc(expires_at))
            return True

    async def unlock_reminder(self, reminder_id: str, owner_id: str) -> bool:
        async with self._lock:
            self._check_open()
            reminder = self._reminders.get(reminder_id)
            if reminder is None or reminder.lock is None or reminder.lock.owner_id != owner_id:
                return False
            reminder.lock = None
            return True

    async def try_acquire_named_lease(
        self, key: str, owner_id: str, now: datetime, expires_at: datetime
    ) -> bool:
        now = ensure_utc(now)
        async with self._lock:
            self._check_open()
            lease = self._leases.get(key)
            if lease is not None and lease.is_active(now) and lease.owner_id != owner_id:
                return False
            acquired_at = lease.acquired_at if lease is not None and lease.owner_id == owner_id else now
            self._leases[key] = LeaseInfo(owner_id=owner_id, acquired_at=acquired_at, expires_at=ensure_utc(expires_at))
            return True

    async def expire_named_lease(self, key: str, owner_id: str, at: datetime) -> bool:
        async with self._lock:
            self._check_open()
            lease = self._leases.get(key)
            if lease is None or lease.owner_id != owner_id:
                return False
            lease.expires_at = ensure_utc(at)
            return True

    async def get_named_lease(self, key: str) -> LeaseInfo | None:
        async with self._lock:
            self._check_open()
            lease = self._leases.get(key)
            return copy.deepcopy(lease) if lease else None

    async def is_healthy(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        self._closed = True

"""Time-bounded ownership claims stored in the shared database.

A lease is granted by one atomic conditional write: the backend must match a
record whose lease is absent, expired, or already held by the caller, and set
the new owner and expiry in the same statement. Nothing here reads first and
writes later.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Protocol

from .datetime import ensure_utc, now_utc

logger = logging.getLogger("telegram_reminder_bot.utils.locks")

DEFAULT_LEASE_SECONDS = 60
MIN_TTL_LEASE_SECONDS = 5


class LeaseBackend(Protocol):
    async def try_acquire(self, key: str, owner_id: str, now: datetime, expires_at: datetime) -> bool:
        ...

    async def release(self, key: str, owner_id: str, now: datetime) -> bool:
        ...


class LeaseLock:
    """Acquire, renew and release leases through a :class:`LeaseBackend`."""

    def __init__(self, backend: LeaseBackend, *, name: str = "lease") -> None:
        self._backend = backend
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def acquire_or_renew(
        self,
        key: str,
        owner_id: str,
        now: datetime,
        lease_duration: timedelta,
    ) -> bool:
        """Grant or extend the lease on ``key`` for ``owner_id``.

        Returns ``False`` when another owner holds an unexpired lease or when
        the store fails; a lease is never granted on error.
        """

        if lease_duration <= timedelta(0):
            raise ValueError("lease_duration must be positive")
        now = ensure_utc(now)
        try:
            return await self._backend.try_acquire(key, owner_id, now, now + lease_duration)
        except Exception:  # noqa: BLE001 - store errors mean "not granted"
            logger.warning(
                "lease_acquire_failed lock=%s key=%s owner=%s", self._name, key, owner_id, exc_info=True
            )
            return False

    async def release(self, key: str, owner_id: str, now: datetime | None = None) -> bool:
        """Give up ``owner_id``'s lease on ``key``; other owners are never touched."""

        try:
            return await self._backend.release(key, owner_id, ensure_utc(now) if now else now_utc())
        except Exception:  # noqa: BLE001 - an unreleased lease still expires on its own
            logger.warning(
                "lease_release_failed lock=%s key=%s owner=%s", self._name, key, owner_id, exc_info=True
            )
            return False


def resolve_lease_seconds(
    lock_seconds: int | float | None = None,
    lock_ttl_ms: int | float | None = None,
    default: int = DEFAULT_LEASE_SECONDS,
) -> int:
    """Pick the per-item lease length from explicit seconds or a millisecond TTL."""

    if lock_seconds is not None and lock_seconds > 0:
        return max(1, int(lock_seconds))
    if lock_ttl_ms is not None and lock_ttl_ms > 0:
        return max(MIN_TTL_LEASE_SECONDS, int(lock_ttl_ms // 1000))
    return default

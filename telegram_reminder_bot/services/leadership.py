"""Single-leader election for the Telegram long-polling duty.

Telegram allows only one ``getUpdates`` consumer per bot token, so every
instance competes for one named lease and only the holder polls. The lease is
renewed from a background task. A failed renewal is tolerated until the last
granted lease expires; after that the instance stops considering itself
leader and another instance may take the lease.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
import time
from contextlib import suppress
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from ..utils.datetime import now_utc
from ..utils.locks import LeaseLock

logger = logging.getLogger("telegram_reminder_bot.services.leadership")
audit_logger = logging.getLogger("telegram_reminder_bot.audit")


def make_instance_id(prefix: str = "bot") -> str:
    """Identifier unique to this process: ``<prefix>_<host>_<pid>_<start ms>``."""

    return f"{prefix}_{socket.gethostname()}_{os.getpid()}_{int(time.time() * 1000)}"


class LeadershipCoordinator:
    def __init__(
        self,
        lease_lock: LeaseLock,
        *,
        key: str,
        owner_id: str,
        lease_duration: timedelta,
        renew_interval: timedelta,
        retry_delay: timedelta = timedelta(seconds=2),
        clock: Callable[[], datetime] = now_utc,
        on_lost: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        if lease_duration <= timedelta(0):
            raise ValueError("lease_duration must be positive")
        if renew_interval <= timedelta(0) or renew_interval >= lease_duration:
            raise ValueError("renew_interval must be positive and shorter than lease_duration")
        self._lock = lease_lock
        self._key = key
        self._owner_id = owner_id
        self._lease_duration = lease_duration
        self._renew_interval = renew_interval
        self._retry_delay = retry_delay
        self._clock = clock
        self._on_lost = on_lost
        self._is_leader = False
        self._lease_expires_at: datetime | None = None
        self._renew_task: asyncio.Task[None] | None = None

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def key(self) -> str:
        return self._key

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    async def try_acquire(self) -> bool:
        granted = await self._renew_once()
        if granted and not self._is_leader:
            logger.info("leadership acquired key=%s owner=%s", self._key, self._owner_id)
            audit_logger.info(
                json.dumps({"event": "LEADER_ACQUIRED", "key": self._key, "owner": self._owner_id})
            )
        if not granted:
            self._lease_expires_at = None
        self._is_leader = granted
        return granted

    async def _renew_once(self) -> bool:
        now = self._clock()
        granted = await self._lock.acquire_or_renew(self._key, self._owner_id, now, self._lease_duration)
        if granted:
            self._lease_expires_at = now + self._lease_duration
        return granted

    async def wait_for_acquire(self) -> None:
        """Block until this instance holds the lease."""

        attempts = 0
        while not await self.try_acquire():
            attempts += 1
            if attempts == 1 or attempts % 30 == 0:
                logger.info(
                    "waiting for leadership key=%s owner=%s attempts=%s",
                    self._key,
                    self._owner_id,
                    attempts,
                )
            await asyncio.sleep(self._retry_delay.total_seconds())

    def start_renewal(self) -> None:
        if self._renew_task is not None and not self._renew_task.done():
            return
        self._renew_task = asyncio.create_task(self._renew_loop(), name=f"leader-renew:{self._key}")

    async def _renew_loop(self) -> None:
        while True:
            await asyncio.sleep(self._renew_interval.total_seconds())
            if await self._renew_once():
                continue
            # a missed renewal is not a loss while the last granted lease is unexpired
            if self._lease_expires_at is not None and self._clock() < self._lease_expires_at:
                logger.warning(
                    "leadership renewal missed key=%s owner=%s valid_until=%s",
                    self._key,
                    self._owner_id,
                    self._lease_expires_at.isoformat(),
                )
                continue
            self._is_leader = False
            self._lease_expires_at = None
            logger.warning("leadership lost key=%s owner=%s", self._key, self._owner_id)
            if self._on_lost is not None:
                try:
                    await self._on_lost()
                except Exception:  # noqa: BLE001 - the renewal task must end cleanly
                    logger.exception("leadership loss callback failed key=%s", self._key)
            return

    async def release(self) -> None:
        task, self._renew_task = self._renew_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._lease_expires_at = None
        if not self._is_leader:
            return
        self._is_leader = False
        if await self._lock.release(self._key, self._owner_id, self._clock()):
            audit_logger.info(
                json.dumps({"event": "LEADER_RELEASED", "key": self._key, "owner": self._owner_id})
            )
        logger.info("leadership released key=%s owner=%s", self._key, self._owner_id)

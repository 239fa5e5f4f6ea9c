"""SQLite-backed reminder store shared by every bot instance on the host.

Each call opens its own connection in a worker thread. Lease and state
changes are single ``UPDATE``/upsert statements whose ``WHERE`` clause
carries the whole condition, so SQLite serialises concurrent writers and at
most one of them sees ``rowcount == 1``.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..models.reminder import STATUS_CANCELLED, LeaseInfo, Reminder
from ..utils.datetime import ensure_utc
from .base import ReminderStore, StoreError, load_schedule, load_spans, row_payload
from .migrations import MIGRATIONS

logger = logging.getLogger("telegram_reminder_bot.storage.sqlite")

T = TypeVar("T")

_COLUMNS = (
    "id",
    "owner_chat",
    "text",
    "spans",
    "timezone",
    "schedule",
    "status",
    "next_run_at",
    "last_run_at",
    "lock_owner",
    "lock_acquired_at",
    "lock_expires_at",
    "created_at",
)
_TIME_COLUMNS = frozenset({"next_run_at", "last_run_at", "lock_acquired_at", "lock_expires_at", "created_at"})


def _to_epoch(value: datetime | None) -> float | None:
    if value is None:
        return None
    return ensure_utc(value).timestamp()


def _from_epoch(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


class SQLiteReminderStore(ReminderStore):
    def __init__(self, path: Path, *, busy_timeout: float = 5.0) -> None:
        self._path = Path(path)
        self._busy_timeout = busy_timeout
        self._closed = False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._apply_migrations()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # internal helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._busy_timeout)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        if self._closed:
            raise StoreError("store is closed")

        def _call() -> T:
            with closing(self._connect()) as conn:
                with conn:
                    return func(conn)

        try:
            return await asyncio.to_thread(_call)
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite operation failed: {exc}") from exc

    def _apply_migrations(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            current = int(conn.execute("PRAGMA user_version").fetchone()[0])
            target = MIGRATIONS[-1].version if MIGRATIONS else 0
            for migration in MIGRATIONS:
                if migration.version <= current:
                    continue
                logger.info("Applying migration %s to %s", migration.version, self._path)
                with conn:
                    migration.upgrade(conn)
                    conn.execute(f"PRAGMA user_version = {int(migration.version)}")
            if current > target:
                logger.warning(
                    "Database %s has schema version %s, newer than supported %s",
                    self._path,
                    current,
                    target,
                )

    def _row_to_reminder(self, row: sqlite3.Row) -> Reminder:
        lock = None
        if row["lock_owner"] is not None and row["lock_expires_at"] is not None:
            lock = LeaseInfo(
                owner_id=row["lock_owner"],
                acquired_at=_from_epoch(row["lock_acquired_at"]) or _from_epoch(row["lock_expires_at"]),
                expires_at=_from_epoch(row["lock_expires_at"]),
            )
        return Reminder(
            id=row["id"],
            owner_chat=int(row["owner_chat"]),
            text=row["text"],
            timezone=row["timezone"],
            schedule=load_schedule(row["schedule"], reminder_id=row["id"]),
            next_run_at=_from_epoch(row["next_run_at"]),
            status=row["status"],
            spans=load_spans(row["spans"], reminder_id=row["id"]),
            last_run_at=_from_epoch(row["last_run_at"]),
            lock=lock,
            created_at=_from_epoch(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # reminders
    async def insert(self, reminder: Reminder) -> Reminder:
        payload: dict[str, Any] = row_payload(reminder)
        values = tuple(
            _to_epoch(payload[column]) if column in _TIME_COLUMNS else payload[column] for column in _COLUMNS
        )
        placeholders = ", ".join("?" for _ in _COLUMNS)
        sql = f"INSERT INTO reminders ({', '.join(_COLUMNS)}) VALUES ({placeholders})"

        def _insert(conn: sqlite3.Connection) -> None:
            try:
                conn.execute(sql, values)
            except sqlite3.IntegrityError as exc:
                raise StoreError(f"reminder {reminder.id} already exists") from exc

        await self._run(_insert)
        return reminder

    async def get(self, reminder_id: str, *, owner_chat: int | None = None) -> Reminder | None:
        sql = "SELECT * FROM reminders WHERE id = ?"
        params: list[Any] = [reminder_id]
        if owner_chat is not None:
            sql += " AND owner_chat = ?"
            params.append(int(owner_chat))
        row = await self._run(lambda conn: conn.execute(sql, params).fetchone())
        return self._row_to_reminder(row) if row is not None else None

    async def find_due(self, now: datetime, limit: int) -> list[Reminder]:
        params = (_to_epoch(now), max(0, int(limit)))
        rows = await self._run(
            lambda conn: conn.execute(
                """
                SELECT * FROM reminders
                WHERE status = 'scheduled' AND next_run_at IS NOT NULL AND next_run_at <= ?
                ORDER BY next_run_at ASC
                LIMIT ?
                """,
                params,
            ).fetchall()
        )
        return [self._row_to_reminder(row) for row in rows]

    async def update_state(
        self,
        reminder_id: str,
        *,
        status: str,
        next_run_at: datetime | None,
        last_run_at: datetime | None = None,
        owner_chat: int | None = None,
        unless_locked_at: datetime | None = None,
        unless_cancelled: bool = False,
    ) -> bool:
        assignments = ["status = ?", "next_run_at = ?"]
        params: list[Any] = [status, _to_epoch(next_run_at)]
        if last_run_at is not None:
            assignments.append("last_run_at = ?")
            params.append(_to_epoch(last_run_at))
        conditions = ["id = ?"]
        params.append(reminder_id)
        if owner_chat is not None:
            conditions.append("owner_chat = ?")
            params.append(int(owner_chat))
        if unless_locked_at is not None:
            conditions.append("(lock_expires_at IS NULL OR lock_expires_at <= ?)")
            params.append(_to_epoch(unless_locked_at))
        if unless_cancelled:
            conditions.append("status != ?")
            params.append(STATUS_CANCELLED)
        sql = f"UPDATE reminders SET {', '.join(assignments)} WHERE {' AND '.join(conditions)}"
        rowcount = await self._run(lambda conn: conn.execute(sql, params).rowcount)
        return rowcount == 1

    async def try_lock_reminder(
        self, reminder_id: str, owner_id: str, now: datetime, expires_at: datetime
    ) -> bool:
        at = _to_epoch(now)
        params = {
            "id": reminder_id,
            "owner": owner_id,
            "now": at,
            "expires": _to_epoch(expires_at),
        }
        rowcount = await self._run(
            lambda conn: conn.execute(
                """
                UPDATE reminders
                SET lock_owner = :owner, lock_acquired_at = :now, lock_expires_at = :expires
                WHERE id = :id
                  AND status = 'scheduled'
                  AND next_run_at IS NOT NULL AND next_run_at <= :now
                  AND (lock_expires_at IS NULL OR lock_expires_at <= :now OR lock_owner = :owner)
                """,
                params,
            ).rowcount
        )
        return rowcount == 1

    async def unlock_reminder(self, reminder_id: str, owner_id: str) -> bool:
        rowcount = await self._run(
            lambda conn: conn.execute(
                """
                UPDATE reminders
                SET lock_owner = NULL, lock_acquired_at = NULL, lock_expires_at = NULL
                WHERE id = ? AND lock_owner = ?
                """,
                (reminder_id, owner_id),
            ).rowcount
        )
        return rowcount == 1

    # ------------------------------------------------------------------
    # named leases
    async def try_acquire_named_lease(
        self, key: str, owner_id: str, now: datetime, expires_at: datetime
    ) -> bool:
        params = {"key": key, "owner": owner_id, "now": _to_epoch(now), "expires": _to_epoch(expires_at)}
        rowcount = await self._run(
            lambda conn: conn.execute(
                """
                INSERT INTO leases (key, owner_id, acquired_at, expires_at, updated_at)
                VALUES (:key, :owner, :now, :expires, :now)
                ON CONFLICT(key) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    acquired_at = CASE
                        WHEN leases.owner_id = excluded.owner_id THEN leases.acquired_at
                        ELSE excluded.acquired_at
                    END,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                WHERE leases.expires_at <= :now OR leases.owner_id = :owner
                """,
                params,
            ).rowcount
        )
        return rowcount == 1

    async def expire_named_lease(self, key: str, owner_id: str, at: datetime) -> bool:
        params = (_to_epoch(at), _to_epoch(at), key, owner_id)
        rowcount = await self._run(
            lambda conn: conn.execute(
                "UPDATE leases SET expires_at = ?, updated_at = ? WHERE key = ? AND owner_id = ?",
                params,
            ).rowcount
        )
        return rowcount == 1

    async def get_named_lease(self, key: str) -> LeaseInfo | None:
        row = await self._run(
            lambda conn: conn.execute(
                "SELECT owner_id, acquired_at, expires_at FROM leases WHERE key = ?", (key,)
            ).fetchone()
        )
        if row is None:
            return None
        return LeaseInfo(
            owner_id=row["owner_id"],
            acquired_at=_from_epoch(row["acquired_at"]),
            expires_at=_from_epoch(row["expires_at"]),
        )

    async def is_healthy(self) -> bool:
        if self._closed:
            return False
        try:
            await self._run(lambda conn: conn.execute("SELECT 1").fetchone())
        except StoreError:
            logger.warning("sqlite health check failed for %s", self._path, exc_info=True)
            return False
        return True

    async def close(self) -> None:
        self._closed = True

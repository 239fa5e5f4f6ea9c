"""Schema migrations for the SQLite reminder store."""
from __future__ import annotations

import sqlite3
from typing import Callable, NamedTuple, Tuple


class Migration(NamedTuple):
    version: int
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None]


def _upgrade_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS reminders (
            id TEXT PRIMARY KEY,
            owner_chat INTEGER NOT NULL,
            text TEXT NOT NULL,
            spans TEXT NOT NULL DEFAULT '[]',
            timezone TEXT NOT NULL,
            schedule TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'scheduled',
            next_run_at REAL,
            last_run_at REAL,
            lock_owner TEXT,
            lock_acquired_at REAL,
            lock_expires_at REAL,
            created_at REAL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS leases (
            key TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            acquired_at REAL NOT NULL,
            expires_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(status, next_run_at)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_reminders_owner ON reminders(owner_chat)")


def _downgrade_v1(conn: sqlite3.Connection) -> None:
    conn.execute("DROP INDEX IF EXISTS idx_reminders_owner")
    conn.execute("DROP INDEX IF EXISTS idx_reminders_due")
    conn.execute("DROP TABLE IF EXISTS leases")
    conn.execute("DROP TABLE IF EXISTS reminders")


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(version=1, upgrade=_upgrade_v1, downgrade=_downgrade_v1),
)


__all__ = ["MIGRATIONS", "Migration"]

from __future__ import annotations

from ..config import BotConfig, ConfigError
from .base import ReminderStore
from .memory import MemoryReminderStore
from .sqlite import SQLiteReminderStore


def create_store(config: BotConfig) -> ReminderStore:
    if config.storage_backend == "sqlite":
        return SQLiteReminderStore(config.database_path)
    if config.storage_backend == "memory":
        return MemoryReminderStore()
    raise ConfigError(f"unknown storage backend: {config.storage_backend}")

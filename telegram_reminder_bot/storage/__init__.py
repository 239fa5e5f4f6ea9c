from .base import ReminderStore, StoreError
from .factory import create_store
from .memory import MemoryReminderStore
from .sqlite import SQLiteReminderStore

__all__ = [
    "MemoryReminderStore",
    "ReminderStore",
    "SQLiteReminderStore",
    "StoreError",
    "create_store",
]

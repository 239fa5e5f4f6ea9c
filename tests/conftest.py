import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from telegram_reminder_bot.storage.memory import MemoryReminderStore  # noqa: E402
from telegram_reminder_bot.storage.sqlite import SQLiteReminderStore  # noqa: E402
from telegram_reminder_bot.utils.recurrence import RecurrenceCalculator  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, destination, text, *, spans=(), controls=(), idempotency_key=None):
        if self.fail:
            raise ConnectionError("telegram unavailable")
        self.sent.append(
            {
                "destination": destination,
                "text": text,
                "spans": tuple(spans),
                "controls": controls,
                "idempotency_key": idempotency_key,
            }
        )
        return {"message_id": len(self.sent)}


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 13, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def calculator():
    return RecurrenceCalculator("America/Chicago")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryReminderStore()
    return SQLiteReminderStore(tmp_path / "reminders.db")


@pytest.fixture
def notifier_factory():
    return RecordingNotifier

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from telegram_reminder_bot.models import DailySchedule, OnceSchedule, Reminder, WeeklySchedule
from telegram_reminder_bot.services.actions import ReminderActionHandler
from telegram_reminder_bot.utils.locks import LeaseLock


def make_reminder(now, schedule=None, reminder_id="r1", owner_chat=555):
    return Reminder(
        id=reminder_id,
        owner_chat=owner_chat,
        text="Take vitamins",
        timezone="America/Chicago",
        schedule=schedule or OnceSchedule(),
        next_run_at=now - timedelta(minutes=2),
    )


def handler_for(store, calculator, clock, **kwargs):
    return ReminderActionHandler(store=store, calculator=calculator, clock=clock, **kwargs)


def test_done_on_once_reminder_marks_it_sent(store, calculator, clock):
    async def scenario():
        await store.insert(make_reminder(clock()))
        result = await handler_for(store, calculator, clock).handle("rem:done:r1", owner_chat=555)

        assert result.status == "done"
        assert result.text == "✅ Marked as done."
        stored = await store.get("r1")
        assert stored.status == "sent"
        assert stored.next_run_at is None
        assert stored.last_run_at == clock()

    asyncio.run(scenario())


def test_done_on_recurring_reminder_rearms_it(store, calculator, clock):
    async def scenario():
        # Thursday 10:00 local; next Monday 09:00 CDT
        schedule = WeeklySchedule(days_of_week=frozenset({1}), time_of_day="09:00")
        await store.insert(make_reminder(clock(), schedule=schedule))
        result = await handler_for(store, calculator, clock).handle("rem:done:r1", owner_chat=555)

        expected = datetime(2025, 3, 17, 14, 0, tzinfo=timezone.utc)
        assert result.status == "rearmed"
        assert result.next_run_at == expected
        assert result.text == "✅ Done. Next reminder: Mon, Mar 17 at 9:00 AM."
        stored = await store.get("r1")
        assert stored.status == "scheduled"
        assert stored.next_run_at == expected
        assert stored.last_run_at == clock()

    asyncio.run(scenario())


def test_snooze_overrides_next_run_only(store, calculator, clock):
    async def scenario():
        schedule = DailySchedule(time_of_day="09:00")
        await store.insert(make_reminder(clock(), schedule=schedule))
        result = await handler_for(store, calculator, clock).handle("rem:sz:r1:60", owner_chat=555)

        assert result.status == "snoozed"
        stored = await store.get("r1")
        assert stored.next_run_at == clock() + timedelta(minutes=60)
        assert stored.status == "scheduled"
        assert stored.schedule == schedule
        assert stored.last_run_at is None

    asyncio.run(scenario())


def test_snooze_revives_a_sent_once_reminder(store, calculator, clock):
    async def scenario():
        reminder = make_reminder(clock())
        reminder.status = "sent"
        reminder.next_run_at = None
        await store.insert(reminder)
        result = await handler_for(store, calculator, clock).handle("rem:sz:r1:10", owner_chat=555)
        assert result.status == "snoozed"
        stored = await store.get("r1")
        assert stored.status == "scheduled"
        assert stored.next_run_at == clock() + timedelta(minutes=10)

    asyncio.run(scenario())


def test_delete_cancels_without_removing(store, calculator, clock):
    async def scenario():
        await store.insert(make_reminder(clock(), schedule=DailySchedule()))
        result = await handler_for(store, calculator, clock).handle("rem:del:r1", owner_chat=555)
        assert result.status == "cancelled"
        stored = await store.get("r1")
        assert stored.status == "cancelled"
        assert stored.next_run_at is None
        assert await store.find_due(clock() + timedelta(days=30), 10) == []

    asyncio.run(scenario())


@pytest.mark.parametrize("token", ["rem:done:r1", "rem:sz:r1:10", "rem:del:r1"])
def test_deleted_reminder_stays_deleted(store, calculator, clock, token):
    async def scenario():
        await store.insert(make_reminder(clock(), schedule=DailySchedule(time_of_day="09:00")))
        handler = handler_for(store, calculator, clock)
        assert (await handler.handle("rem:del:r1", owner_chat=555)).status == "cancelled"

        result = await handler.handle(token, owner_chat=555)
        assert result.status == "missing"
        assert not result.applied
        stored = await store.get("r1")
        assert stored.status == "cancelled"
        assert stored.next_run_at is None

    asyncio.run(scenario())


def test_other_owner_sees_missing_reminder(store, calculator, clock):
    async def scenario():
        await store.insert(make_reminder(clock()))
        handler = handler_for(store, calculator, clock)
        result = await handler.handle("rem:done:r1", owner_chat=999)
        assert result.status == "missing"
        assert result.text == "That reminder no longer exists."
        assert (await store.get("r1")).status == "scheduled"
        assert (await handler.handle("rem:done:gone", owner_chat=555)).status == "missing"

    asyncio.run(scenario())


def test_action_refused_while_dispatcher_holds_lease(store, calculator, clock):
    async def scenario():
        await store.insert(make_reminder(clock()))
        lock = LeaseLock(store.reminder_leases())
        assert await lock.acquire_or_renew("r1", "dispatcher", clock(), timedelta(seconds=60))

        handler = handler_for(store, calculator, clock)
        result = await handler.handle("rem:del:r1", owner_chat=555)
        assert result.status == "busy"
        assert (await store.get("r1")).status == "scheduled"

        clock.advance(seconds=61)
        assert (await handler.handle("rem:del:r1", owner_chat=555)).status == "cancelled"

    asyncio.run(scenario())


def test_replayed_token_is_harmless(store, calculator, clock):
    async def scenario():
        await store.insert(make_reminder(clock()))
        handler = handler_for(store, calculator, clock)
        first = await handler.handle("rem:done:r1", owner_chat=555)
        second = await handler.handle("rem:done:r1", owner_chat=555)
        assert first.status == second.status == "done"
        stored = await store.get("r1")
        assert stored.status == "sent"
        assert stored.next_run_at is None

    asyncio.run(scenario())


def test_unrecognized_tokens_are_ignored(store, calculator, clock):
    async def scenario():
        await store.insert(make_reminder(clock()))
        handler = handler_for(store, calculator, clock)
        for data in ("rem:sz:r1:abc", "rem:zap:r1", "menu:my", None):
            result = await handler.handle(data, owner_chat=555)
            assert result.status == "ignored"
            assert not result.applied
        assert (await store.get("r1")).status == "scheduled"

    asyncio.run(scenario())


def test_russian_replies(store, calculator, clock):
    async def scenario():
        handler = handler_for(store, calculator, clock, language="ru", namespace="todo")
        assert handler.owns("todo:done:x")
        assert not handler.owns("rem:done:x")
        result = await handler.handle("todo:done:x", owner_chat=1)
        assert result.text == "Это напоминание больше не существует."

    asyncio.run(scenario())

import asyncio
import os
from datetime import timedelta

import pytest

from telegram_reminder_bot.services.leadership import LeadershipCoordinator, make_instance_id
from telegram_reminder_bot.storage.memory import MemoryReminderStore
from telegram_reminder_bot.utils.locks import LeaseLock


def coordinator(store, owner_id, clock, **kwargs):
    return LeadershipCoordinator(
        LeaseLock(store.named_leases(), name="leadership"),
        key="telegram_polling_lock",
        owner_id=owner_id,
        lease_duration=kwargs.pop("lease_duration", timedelta(seconds=60)),
        renew_interval=kwargs.pop("renew_interval", timedelta(seconds=20)),
        retry_delay=kwargs.pop("retry_delay", timedelta(seconds=2)),
        clock=clock,
        **kwargs,
    )


class FlakyBackend:
    """Named-lease backend whose next ``failures`` acquires raise."""

    def __init__(self, store, failures):
        self._inner = store.named_leases()
        self.failures = failures

    async def try_acquire(self, key, owner_id, now, expires_at):
        if self.failures:
            self.failures -= 1
            raise OSError("database is unavailable")
        return await self._inner.try_acquire(key, owner_id, now, expires_at)

    async def release(self, key, owner_id, now):
        return await self._inner.release(key, owner_id, now)


def flaky_leader(backend, clock, on_lost):
    return LeadershipCoordinator(
        LeaseLock(backend, name="leadership"),
        key="telegram_polling_lock",
        owner_id="a",
        lease_duration=timedelta(seconds=60),
        renew_interval=timedelta(milliseconds=10),
        clock=clock,
        on_lost=on_lost,
    )

def test_instance_id_names_the_process():
    instance_id = make_instance_id("bot")
    assert instance_id.startswith("bot_")
    assert f"_{os.getpid()}_" in instance_id


def test_renew_interval_must_be_shorter_than_lease(clock):
    with pytest.raises(ValueError):
        coordinator(MemoryReminderStore(), "a", clock, renew_interval=timedelta(seconds=60))


def test_only_one_instance_leads(store, clock):
    async def scenario():
        first = coordinator(store, "a", clock)
        second = coordinator(store, "b", clock)
        assert await first.try_acquire()
        assert not await second.try_acquire()
        assert first.is_leader and not second.is_leader

        await first.release()
        assert not first.is_leader
        assert await second.try_acquire()
        lease = await store.get_named_lease("telegram_polling_lock")
        assert lease.owner_id == "b"

    asyncio.run(scenario())


def test_release_is_idempotent_and_keeps_the_record(store, clock):
    async def scenario():
        leader = coordinator(store, "a", clock)
        await leader.try_acquire()
        await leader.release()
        await leader.release()
        lease = await store.get_named_lease("telegram_polling_lock")
        assert lease is not None
        assert lease.expires_at == clock()

    asyncio.run(scenario())


def test_wait_for_acquire_takes_over_expired_lease(clock):
    async def scenario():
        store = MemoryReminderStore()
        stale = coordinator(store, "crashed", clock)
        assert await stale.try_acquire()

        waiting = coordinator(store, "b", clock, retry_delay=timedelta(milliseconds=5))
        task = asyncio.create_task(waiting.wait_for_acquire())
        await asyncio.sleep(0.02)
        assert not task.done()
        clock.advance(seconds=61)
        await asyncio.wait_for(task, timeout=1)
        assert waiting.is_leader

    asyncio.run(scenario())


def test_renewal_keeps_the_lease_alive(clock):
    async def scenario():
        store = MemoryReminderStore()
        leader = coordinator(
            store,
            "a",
            clock,
            lease_duration=timedelta(seconds=1),
            renew_interval=timedelta(milliseconds=10),
        )
        await leader.try_acquire()
        leader.start_renewal()
        leader.start_renewal()
        clock.advance(seconds=30)
        await asyncio.sleep(0.05)
        lease = await store.get_named_lease("telegram_polling_lock")
        assert lease.expires_at == clock() + timedelta(seconds=1)
        await leader.release()
        assert not leader.is_leader

    asyncio.run(scenario())


def test_lost_renewal_clears_leadership_and_notifies(clock):
    async def scenario():
        store = MemoryReminderStore()
        lost = asyncio.Event()

        async def on_lost():
            lost.set()

        leader = coordinator(
            store,
            "a",
            clock,
            lease_duration=timedelta(seconds=1),
            renew_interval=timedelta(milliseconds=10),
            on_lost=on_lost,
        )
        await leader.try_acquire()
        clock.advance(seconds=5)
        usurper = coordinator(store, "b", clock)
        assert await usurper.try_acquire()

        leader.start_renewal()
        await asyncio.wait_for(lost.wait(), timeout=1)
        assert not leader.is_leader
        await leader.release()
        lease = await store.get_named_lease("telegram_polling_lock")
        assert lease.owner_id == "b"
        assert lease.expires_at > clock()

    asyncio.run(scenario())


def test_missed_renewal_keeps_a_valid_lease(clock):
    async def scenario():
        store = MemoryReminderStore()
        backend = FlakyBackend(store, failures=0)
        lost = asyncio.Event()

        async def on_lost():
            lost.set()

        leader = flaky_leader(backend, clock, on_lost)
        assert await leader.try_acquire()
        backend.failures = 1
        leader.start_renewal()
        await asyncio.sleep(0.1)

        assert backend.failures == 0
        assert leader.is_leader
        assert not lost.is_set()
        lease = await store.get_named_lease("telegram_polling_lock")
        assert lease.owner_id == "a"
        assert lease.expires_at == clock() + timedelta(seconds=60)
        await leader.release()

    asyncio.run(scenario())


def test_failing_renewals_give_up_once_the_lease_expires(clock):
    async def scenario():
        store = MemoryReminderStore()
        backend = FlakyBackend(store, failures=0)
        lost = asyncio.Event()

        async def on_lost():
            lost.set()

        leader = flaky_leader(backend, clock, on_lost)
        assert await leader.try_acquire()
        backend.failures = 10_000
        leader.start_renewal()
        await asyncio.sleep(0.05)
        assert leader.is_leader and not lost.is_set()

        clock.advance(seconds=61)
        await asyncio.wait_for(lost.wait(), timeout=1)
        assert not leader.is_leader
        await leader.release()

    asyncio.run(scenario())

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ..keyboards.inline import reminder_controls
from ..models.reminder import STATUS_SCHEDULED, STATUS_SENT, Reminder
from ..storage.base import ReminderStore
from ..utils.datetime import now_utc
from ..utils.locks import DEFAULT_LEASE_SECONDS, LeaseLock
from ..utils.metrics import MetricsCollector
from ..utils.recurrence import RecurrenceCalculator
from ..utils.tokens import DEFAULT_NAMESPACE
from .notifier import Notifier

logger = logging.getLogger("telegram_reminder_bot.services.dispatcher")
audit_logger = logging.getLogger("telegram_reminder_bot.audit")
error_logger = logging.getLogger("telegram_reminder_bot.error")

DEFAULT_BATCH_SIZE = 25
DEFAULT_FAILURE_BACKOFF = timedelta(minutes=5)


@dataclass(slots=True)
class TickReport:
    due: int = 0
    dispatched: int = 0
    failed: int = 0
    skipped: int = 0
    retired: int = 0


def idempotency_key(reminder: Reminder) -> str:
    scheduled_for = reminder.next_run_at.isoformat() if reminder.next_run_at else "-"
    return f"reminder:{reminder.id}:{scheduled_for}"


class ReminderDispatcher:
    """Fires due reminders, one leased item at a time.

    Every instance runs a dispatcher against the shared store; the per-item
    lease decides which instance handles a given reminder.
    """

    def __init__(
        self,
        *,
        store: ReminderStore,
        notifier: Notifier,
        calculator: RecurrenceCalculator,
        instance_id: str,
        lease_lock: LeaseLock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
        failure_backoff: timedelta = DEFAULT_FAILURE_BACKOFF,
        namespace: str = DEFAULT_NAMESPACE,
        language: str = "en",
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._notifier = notifier
        self._calculator = calculator
        self._instance_id = instance_id
        self._lease_lock = lease_lock or LeaseLock(store.reminder_leases(), name="reminder")
        self._batch_size = batch_size
        self._lease_duration = timedelta(seconds=lease_seconds)
        self._failure_backoff = failure_backoff
        self._namespace = namespace
        self._language = language
        self._metrics = metrics
        self._clock = clock
        self._running = False

    @property
    def instance_id(self) -> str:
        return self._instance_id

    async def tick(self) -> TickReport:
        """Run one poll cycle; never raises."""

        report = TickReport()
        if self._running:
            logger.debug("tick skipped: previous tick still running")
            return report
        self._running = True
        try:
            if not await self._store.is_healthy():
                logger.warning("tick skipped: store unavailable")
                return report
            now = self._clock()
            due = await self._store.find_due(now, self._batch_size)
            report.due = len(due)
            for reminder in due:
                await self.process(reminder, report)
        except Exception:  # noqa: BLE001 - a failed tick must not stop the poll loop
            logger.exception("reminder tick failed")
            error_logger.error("reminder tick failed instance=%s", self._instance_id, exc_info=True)
            if self._metrics:
                await self._metrics.incr(tick_errors=1)
        finally:
            self._running = False
        if self._metrics:
            await self._metrics.incr(
                ticks=1,
                due=report.due,
                failures=report.failed,
                lock_skips=report.skipped,
                retired=report.retired,
            )
        if report.due:
            logger.info(
                "tick done due=%s dispatched=%s failed=%s skipped=%s retired=%s",
                report.due,
                report.dispatched,
                report.failed,
                report.skipped,
                report.retired,
            )
        return report

    async def process(self, reminder: Reminder, report: TickReport | None = None) -> None:
        report = report if report is not None else TickReport()
        now = self._clock()
        if not await self._lease_lock.acquire_or_renew(
            reminder.id, self._instance_id, now, self._lease_duration
        ):
            logger.debug("reminder %s locked elsewhere, skipping", reminder.id)
            report.skipped += 1
            return
        try:
            try:
                await self._notifier.send(
                    reminder.owner_chat,
                    reminder.text,
                    spans=reminder.spans,
                    controls=reminder_controls(reminder.id, self._namespace, language=self._language),
                    idempotency_key=idempotency_key(reminder),
                )
            except Exception as exc:  # noqa: BLE001 - any delivery error schedules a retry
                await self._schedule_retry(reminder, exc)
                report.failed += 1
                return
            report.dispatched += 1
            if await self._reschedule(reminder, self._clock()):
                report.retired += 1
        finally:
            await self._lease_lock.release(reminder.id, self._instance_id)

    async def _schedule_retry(self, reminder: Reminder, exc: Exception) -> None:
        retry_at = self._clock() + self._failure_backoff
        logger.warning("reminder delivery failed id=%s chat=%s error=%s", reminder.id, reminder.owner_chat, exc)
        error_logger.error("reminder delivery failed id=%s", reminder.id, exc_info=exc)
        await self._store.update_state(
            reminder.id, status=STATUS_SCHEDULED, next_run_at=retry_at, unless_cancelled=True
        )
        audit_logger.info(
            json.dumps({"event": "REM_RETRY", "reminder_id": reminder.id, "retry_at": retry_at.isoformat()})
        )

    async def _reschedule(self, reminder: Reminder, now: datetime) -> bool:
        """Persist the post-delivery state; returns ``True`` if the reminder was retired."""

        next_run_at: datetime | None = None
        if reminder.is_recurring:
            try:
                next_run_at = self._calculator.next_run(
                    reminder.schedule, reminder.timezone, now, reminder.next_run_at
                )
            except (ValueError, OverflowError) as exc:
                logger.warning("next occurrence failed id=%s error=%s", reminder.id, exc)

        if next_run_at is not None:
            await self._store.update_state(
                reminder.id, status=STATUS_SCHEDULED, next_run_at=next_run_at, last_run_at=now, unless_cancelled=True
            )
            audit_logger.info(
                json.dumps(
                    {
                        "event": "REM_FIRED",
                        "reminder_id": reminder.id,
                        "chat_id": reminder.owner_chat,
                        "next_run_at": next_run_at.isoformat(),
                    }
                )
            )
            return False

        await self._store.update_state(
            reminder.id, status=STATUS_SENT, next_run_at=None, last_run_at=now, unless_cancelled=True
        )
        event = "REM_RETIRED" if reminder.is_recurring else "REM_FIRED"
        audit_logger.info(
            json.dumps({"event": event, "reminder_id": reminder.id, "chat_id": reminder.owner_chat})
        )
        return reminder.is_recurring

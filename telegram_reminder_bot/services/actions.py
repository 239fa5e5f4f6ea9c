from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Literal

from ..locales import get_text
from ..models.reminder import STATUS_CANCELLED, STATUS_SCHEDULED, STATUS_SENT, Reminder
from ..storage.base import ReminderStore
from ..utils.datetime import format_local, now_utc
from ..utils.recurrence import RecurrenceCalculator
from ..utils.tokens import (
    DEFAULT_NAMESPACE,
    CancelAction,
    DoneAction,
    SnoozeAction,
    UnrecognizedAction,
    parse_action,
)

logger = logging.getLogger("telegram_reminder_bot.services.actions")
audit_logger = logging.getLogger("telegram_reminder_bot.audit")

ActionStatus = Literal["done", "rearmed", "snoozed", "cancelled", "missing", "busy", "ignored"]


@dataclass(frozen=True, slots=True)
class ActionResult:
    status: ActionStatus
    reminder_id: str | None = None
    next_run_at: datetime | None = None
    text: str | None = None

    @property
    def applied(self) -> bool:
        return self.status in ("done", "rearmed", "snoozed", "cancelled")


class ReminderActionHandler:
    """Applies Done / Snooze / Delete button presses to stored reminders.

    Each change is one conditional write matching the reminder id, the owner
    chat, and the absence of an active dispatcher lease. Replaying the same
    token therefore never corrupts state.
    """

    def __init__(
        self,
        *,
        store: ReminderStore,
        calculator: RecurrenceCalculator,
        namespace: str = DEFAULT_NAMESPACE,
        language: str = "en",
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._store = store
        self._calculator = calculator
        self._namespace = namespace
        self._language = language
        self._clock = clock

    @property
    def namespace(self) -> str:
        return self._namespace

    def owns(self, data: str | None) -> bool:
        return bool(data) and data.startswith(f"{self._namespace}:")

    async def handle(self, data: str | None, *, owner_chat: int) -> ActionResult:
        action = parse_action(data, self._namespace)
        if isinstance(action, UnrecognizedAction):
            logger.info("ignoring callback data=%r reason=%s", action.raw, action.reason)
            return ActionResult("ignored")

        reminder = await self._store.get(action.reminder_id, owner_chat=owner_chat)
        if reminder is None or reminder.status == STATUS_CANCELLED:
            return self._missing(action.reminder_id)
        now = self._clock()
        if reminder.is_locked(now):
            return ActionResult(
                "busy", reminder.id, reminder.next_run_at, get_text(self._language, "reminder_busy")
            )

        if isinstance(action, DoneAction):
            return await self._done(reminder, now)
        if isinstance(action, SnoozeAction):
            return await self._snooze(reminder, action.minutes, now)
        if isinstance(action, CancelAction):
            return await self._cancel(reminder, now)
        return ActionResult("ignored", reminder.id)

    def _missing(self, reminder_id: str) -> ActionResult:
        return ActionResult("missing", reminder_id, text=get_text(self._language, "reminder_missing"))

    async def _apply(
        self,
        reminder: Reminder,
        now: datetime,
        *,
        status: str,
        next_run_at: datetime | None,
        last_run_at: datetime | None = None,
    ) -> bool:
        return await self._store.update_state(
            reminder.id,
            status=status,
            next_run_at=next_run_at,
            last_run_at=last_run_at,
            owner_chat=reminder.owner_chat,
            unless_locked_at=now,
            unless_cancelled=True,
        )

    async def _refused(self, reminder: Reminder) -> ActionResult:
        # Lost the conditional write: deleted meanwhile or leased by a dispatcher.
        current = await self._store.get(reminder.id, owner_chat=reminder.owner_chat)
        if current is None or current.status == STATUS_CANCELLED:
            return self._missing(reminder.id)
        return ActionResult("busy", reminder.id, reminder.next_run_at, get_text(self._language, "reminder_busy"))

    async def _done(self, reminder: Reminder, now: datetime) -> ActionResult:
        next_run_at: datetime | None = None
        if reminder.is_recurring:
            try:
                next_run_at = self._calculator.next_run(
                    reminder.schedule, reminder.timezone, now, reminder.next_run_at
                )
            except (ValueError, OverflowError) as exc:
                logger.warning("next occurrence failed id=%s error=%s", reminder.id, exc)

        if next_run_at is not None:
            if not await self._apply(
                reminder, now, status=STATUS_SCHEDULED, next_run_at=next_run_at, last_run_at=now
            ):
                return await self._refused(reminder)
            self._audit("REM_DONE", reminder, next_run_at=next_run_at.isoformat())
            text = get_text(
                self._language,
                "reminder_rearmed",
                time=format_local(next_run_at, self._calculator.zone(reminder.timezone)),
            )
            return ActionResult("rearmed", reminder.id, next_run_at, text)

        if not await self._apply(reminder, now, status=STATUS_SENT, next_run_at=None, last_run_at=now):
            return await self._refused(reminder)
        self._audit("REM_DONE", reminder)
        key = "reminder_retired" if reminder.is_recurring else "reminder_done"
        return ActionResult("done", reminder.id, None, get_text(self._language, key))

    async def _snooze(self, reminder: Reminder, minutes: int, now: datetime) -> ActionResult:
        next_run_at = now + timedelta(minutes=minutes)
        if not await self._apply(reminder, now, status=STATUS_SCHEDULED, next_run_at=next_run_at):
            return await self._refused(reminder)
        self._audit("REM_SNOOZED", reminder, minutes=minutes, next_run_at=next_run_at.isoformat())
        text = get_text(
            self._language,
            "reminder_snoozed",
            time=format_local(next_run_at, self._calculator.zone(reminder.timezone)),
        )
        return ActionResult("snoozed", reminder.id, next_run_at, text)

    async def _cancel(self, reminder: Reminder, now: datetime) -> ActionResult:
        if not await self._apply(reminder, now, status=STATUS_CANCELLED, next_run_at=None):
            return await self._refused(reminder)
        self._audit("REM_CANCELED", reminder)
        return ActionResult("cancelled", reminder.id, None, get_text(self._language, "reminder_cancelled"))

    def _audit(self, event: str, reminder: Reminder, **extra: object) -> None:
        payload = {"event": event, "reminder_id": reminder.id, "chat_id": reminder.owner_chat, **extra}
        audit_logger.info(json.dumps(payload))

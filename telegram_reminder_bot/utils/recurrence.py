"""Next-occurrence arithmetic for reminder schedules.

Everything except ``interval`` is computed on the civil calendar of the
reminder's timezone: a daily reminder at 09:00 stays at 09:00 local time
across daylight-saving changes, and monthly/yearly anchors are clamped to the
last day of short months. ``interval`` is a plain duration.

:func:`compute_next` is pure: it never reads the clock or any global default.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models.schedule import (
    DailySchedule,
    IntervalSchedule,
    MonthlySchedule,
    OnceSchedule,
    Schedule,
    ScheduleError,
    WeeklySchedule,
    YearlySchedule,
)
from .datetime import UTC, ensure_utc, parse_time_of_day

logger = logging.getLogger("telegram_reminder_bot.utils.recurrence")

DEFAULT_TIME_OF_DAY = time(9, 0)
WEEKLY_SCAN_DAYS = 7


def resolve_timezone(name: str | None, default: str) -> ZoneInfo:
    """Return ``ZoneInfo(name)``, falling back to ``default`` and then UTC."""

    for candidate in (name, default):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError, TypeError):
            logger.debug("unknown timezone %r, trying fallback", candidate)
    return ZoneInfo("UTC")


def _positive(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ScheduleError(f"{name} must be a positive integer, got {value!r}")
    return value


def _in_range(value: int, low: int, high: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ScheduleError(f"{name} must be between {low} and {high}, got {value!r}")
    return value


def _sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def _clamped_date(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _add_months(year: int, month: int, months: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + months
    return total // 12, total % 12 + 1


def _at(day: date, time_of_day: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time_of_day, tzinfo=tz).astimezone(UTC)


def _resolve_time_of_day(raw: str | None, previous: datetime | None, tz: ZoneInfo) -> time:
    parsed = parse_time_of_day(raw)
    if parsed is not None:
        return parsed
    if previous is not None:
        local = ensure_utc(previous).astimezone(tz)
        return time(local.hour, local.minute)
    return DEFAULT_TIME_OF_DAY


def _next_daily(schedule: DailySchedule, today: date, at: time, tz: ZoneInfo, now: datetime) -> datetime:
    step = timedelta(days=_positive(schedule.step_days, "step_days"))
    day = today
    candidate = _at(day, at, tz)
    while candidate <= now:
        day += step
        candidate = _at(day, at, tz)
    return candidate


def _next_weekly(schedule: WeeklySchedule, today: date, at: time, tz: ZoneInfo, now: datetime) -> datetime:
    targets = {day for day in schedule.days_of_week if isinstance(day, int) and 0 <= day <= 6}
    if not targets:
        targets = {_sunday_based_weekday(today)}
    for offset in range(WEEKLY_SCAN_DAYS + 1):
        day = today + timedelta(days=offset)
        if _sunday_based_weekday(day) not in targets:
            continue
        candidate = _at(day, at, tz)
        if candidate > now:
            return candidate
    return _at(today + timedelta(days=WEEKLY_SCAN_DAYS), at, tz)


def _next_monthly(schedule: MonthlySchedule, today: date, at: time, tz: ZoneInfo, now: datetime) -> datetime:
    anchor = _in_range(schedule.anchor_day, 1, 31, "anchor_day")
    step = _positive(schedule.step_months, "step_months")
    year, month = today.year, today.month
    candidate = _at(_clamped_date(year, month, anchor), at, tz)
    while candidate <= now:
        year, month = _add_months(year, month, step)
        candidate = _at(_clamped_date(year, month, anchor), at, tz)
    return candidate


def _next_yearly(schedule: YearlySchedule, today: date, at: time, tz: ZoneInfo, now: datetime) -> datetime:
    month = _in_range(schedule.anchor_month, 1, 12, "anchor_month")
    anchor = _in_range(schedule.anchor_day, 1, 31, "anchor_day")
    step = _positive(schedule.step_years, "step_years")
    year = today.year
    candidate = _at(_clamped_date(year, month, anchor), at, tz)
    while candidate <= now:
        year += step
        candidate = _at(_clamped_date(year, month, anchor), at, tz)
    return candidate


def compute_next(
    schedule: Schedule,
    tz: ZoneInfo,
    now: datetime,
    previous_run_at: datetime | None = None,
) -> datetime | None:
    """Return the first occurrence of ``schedule`` strictly after ``now``.

    The result is an aware UTC datetime, or ``None`` for one-off schedules.
    ``previous_run_at`` only supplies the hour and minute when the schedule
    carries no explicit time of day. Invalid parameters raise
    :class:`ScheduleError`.
    """

    now = ensure_utc(now)
    if isinstance(schedule, OnceSchedule):
        return None
    if isinstance(schedule, IntervalSchedule):
        return now + timedelta(minutes=_positive(schedule.minutes, "minutes"))

    at = _resolve_time_of_day(getattr(schedule, "time_of_day", None), previous_run_at, tz)
    today = now.astimezone(tz).date()
    if isinstance(schedule, DailySchedule):
        return _next_daily(schedule, today, at, tz, now)
    if isinstance(schedule, WeeklySchedule):
        return _next_weekly(schedule, today, at, tz, now)
    if isinstance(schedule, MonthlySchedule):
        return _next_monthly(schedule, today, at, tz, now)
    if isinstance(schedule, YearlySchedule):
        return _next_yearly(schedule, today, at, tz, now)
    raise ScheduleError(f"unsupported schedule: {schedule!r}")


class RecurrenceCalculator:
    """Binds :func:`compute_next` to the configured fallback timezone."""

    def __init__(self, default_timezone: str = "UTC") -> None:
        self._default_timezone = default_timezone

    @property
    def default_timezone(self) -> str:
        return self._default_timezone

    def zone(self, name: str | None) -> ZoneInfo:
        return resolve_timezone(name, self._default_timezone)

    def next_run(
        self,
        schedule: Schedule,
        timezone_name: str | None,
        now: datetime,
        previous_run_at: datetime | None = None,
    ) -> datetime | None:
        return compute_next(schedule, self.zone(timezone_name), now, previous_run_at)

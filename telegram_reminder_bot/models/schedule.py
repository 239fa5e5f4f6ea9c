"""Recurrence definitions attached to reminders.

A schedule is one of six tagged variants. They are plain frozen dataclasses so
they can be compared, hashed and persisted as small JSON dictionaries; range
checks happen when the next occurrence is computed, so that bad historical
data never prevents a reminder from being loaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Mapping, Union

from ..utils.datetime import normalize_time_of_day


ScheduleKind = Literal["once", "interval", "daily", "weekly", "monthly", "yearly"]


class ScheduleError(ValueError):
    """Raised when a schedule definition cannot be interpreted."""


@dataclass(frozen=True, slots=True)
class OnceSchedule:
    kind: ClassVar[str] = "once"


@dataclass(frozen=True, slots=True)
class IntervalSchedule:
    minutes: int
    kind: ClassVar[str] = "interval"


@dataclass(frozen=True, slots=True)
class DailySchedule:
    step_days: int = 1
    time_of_day: str | None = None
    kind: ClassVar[str] = "daily"


@dataclass(frozen=True, slots=True)
class WeeklySchedule:
    # 0 = Sunday .. 6 = Saturday
    days_of_week: frozenset[int] = field(default_factory=frozenset)
    time_of_day: str | None = None
    kind: ClassVar[str] = "weekly"


@dataclass(frozen=True, slots=True)
class MonthlySchedule:
    anchor_day: int
    step_months: int = 1
    time_of_day: str | None = None
    kind: ClassVar[str] = "monthly"


@dataclass(frozen=True, slots=True)
class YearlySchedule:
    anchor_month: int
    anchor_day: int
    step_years: int = 1
    time_of_day: str | None = None
    kind: ClassVar[str] = "yearly"


Schedule = Union[
    OnceSchedule,
    IntervalSchedule,
    DailySchedule,
    WeeklySchedule,
    MonthlySchedule,
    YearlySchedule,
]

SCHEDULE_KINDS: tuple[str, ...] = ("once", "interval", "daily", "weekly", "monthly", "yearly")


def is_recurring(schedule: Schedule) -> bool:
    return schedule.kind != "once"


def _as_int(data: Mapping[str, Any], name: str, default: int | None = None) -> int:
    raw = data.get(name)
    if raw is None:
        if default is None:
            raise ScheduleError(f"{name} is required")
        return default
    if isinstance(raw, bool):
        raise ScheduleError(f"{name} must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ScheduleError(f"{name} must be an integer") from exc


def _as_days(raw: Any) -> frozenset[int]:
    if raw is None:
        return frozenset()
    if isinstance(raw, (str, bytes)) or not hasattr(raw, "__iter__"):
        raise ScheduleError("days_of_week must be a list of integers")
    days: set[int] = set()
    for item in raw:
        try:
            days.add(int(item))
        except (TypeError, ValueError) as exc:
            raise ScheduleError("days_of_week must be a list of integers") from exc
    return frozenset(days)


def schedule_from_dict(data: Mapping[str, Any] | None) -> Schedule:
    """Build a schedule from its dictionary form.

    ``None`` or an empty mapping means a one-off reminder. Unknown kinds and
    fields that cannot be coerced raise :class:`ScheduleError`; an invalid
    ``time_of_day`` is dropped rather than rejected.
    """

    if not data:
        return OnceSchedule()
    if not isinstance(data, Mapping):
        raise ScheduleError("schedule must be a mapping")
    kind = data.get("kind", "once")
    time_of_day = normalize_time_of_day(data.get("time_of_day"))
    if kind == "once":
        return OnceSchedule()
    if kind == "interval":
        return IntervalSchedule(minutes=_as_int(data, "minutes"))
    if kind == "daily":
        return DailySchedule(step_days=_as_int(data, "step_days", 1), time_of_day=time_of_day)
    if kind == "weekly":
        return WeeklySchedule(days_of_week=_as_days(data.get("days_of_week")), time_of_day=time_of_day)
    if kind == "monthly":
        return MonthlySchedule(
            anchor_day=_as_int(data, "anchor_day"),
            step_months=_as_int(data, "step_months", 1),
            time_of_day=time_of_day,
        )
    if kind == "yearly":
        return YearlySchedule(
            anchor_month=_as_int(data, "anchor_month"),
            anchor_day=_as_int(data, "anchor_day"),
            step_years=_as_int(data, "step_years", 1),
            time_of_day=time_of_day,
        )
    raise ScheduleError(f"unknown schedule kind: {kind!r}")


def schedule_to_dict(schedule: Schedule) -> dict[str, Any]:
    if isinstance(schedule, OnceSchedule):
        return {"kind": "once"}
    if isinstance(schedule, IntervalSchedule):
        return {"kind": "interval", "minutes": schedule.minutes}
    if isinstance(schedule, DailySchedule):
        return {"kind": "daily", "step_days": schedule.step_days, "time_of_day": schedule.time_of_day}
    if isinstance(schedule, WeeklySchedule):
        return {
            "kind": "weekly",
            "days_of_week": sorted(schedule.days_of_week),
            "time_of_day": schedule.time_of_day,
        }
    if isinstance(schedule, MonthlySchedule):
        return {
            "kind": "monthly",
            "anchor_day": schedule.anchor_day,
            "step_months": schedule.step_months,
            "time_of_day": schedule.time_of_day,
        }
    if isinstance(schedule, YearlySchedule):
        return {
            "kind": "yearly",
            "anchor_month": schedule.anchor_month,
            "anchor_day": schedule.anchor_day,
            "step_years": schedule.step_years,
            "time_of_day": schedule.time_of_day,
        }
    raise ScheduleError(f"unsupported schedule: {schedule!r}")

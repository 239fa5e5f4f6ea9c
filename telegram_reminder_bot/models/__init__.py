from .reminder import (
    REMINDER_STATUSES,
    STATUS_CANCELLED,
    STATUS_SCHEDULED,
    STATUS_SENT,
    LeaseInfo,
    Reminder,
    ReminderStatus,
    TextSpan,
    create_reminder,
)
from .schedule import (
    DailySchedule,
    IntervalSchedule,
    MonthlySchedule,
    OnceSchedule,
    Schedule,
    ScheduleError,
    WeeklySchedule,
    YearlySchedule,
    is_recurring,
    schedule_from_dict,
    schedule_to_dict,
)

__all__ = [
    "REMINDER_STATUSES",
    "STATUS_CANCELLED",
    "STATUS_SCHEDULED",
    "STATUS_SENT",
    "DailySchedule",
    "IntervalSchedule",
    "LeaseInfo",
    "MonthlySchedule",
    "OnceSchedule",
    "Reminder",
    "ReminderStatus",
    "Schedule",
    "ScheduleError",
    "TextSpan",
    "WeeklySchedule",
    "YearlySchedule",
    "create_reminder",
    "is_recurring",
    "schedule_from_dict",
    "schedule_to_dict",
]

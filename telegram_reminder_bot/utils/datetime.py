from __future__ import annotations

import re
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo


UTC = timezone.utc

_TIME_OF_DAY_RE = re.compile(r"^(\d{2}):(\d{2})$")


def now_utc() -> datetime:
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_local(dt: datetime, tz: str | ZoneInfo) -> datetime:
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    return ensure_utc(dt).astimezone(zone)


def parse_time_of_day(value: object) -> time | None:
    """Parse a strict ``HH:MM`` string; anything else yields ``None``."""

    if not isinstance(value, str):
        return None
    match = _TIME_OF_DAY_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def normalize_time_of_day(value: object) -> str | None:
    parsed = parse_time_of_day(value)
    if parsed is None:
        return None
    return parsed.strftime("%H:%M")


def format_local(dt: datetime, tz: str | ZoneInfo) -> str:
    """Human readable local time, e.g. ``Mon, Mar 17 at 9:00 AM``."""

    local = to_local(dt, tz)
    clock = local.strftime("%I:%M %p").lstrip("0")
    return f"{local.strftime('%a, %b')} {local.day} at {clock}"

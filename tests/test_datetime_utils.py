from datetime import datetime, time, timezone

import pytest

from telegram_reminder_bot.utils import datetime as dt_utils


def test_ensure_utc_treats_naive_values_as_utc():
    naive = datetime(2025, 3, 13, 15, 0)
    assert dt_utils.ensure_utc(naive) == datetime(2025, 3, 13, 15, 0, tzinfo=timezone.utc)
    assert dt_utils.ensure_utc(naive).tzinfo == timezone.utc


def test_to_local_converts_to_zone():
    local = dt_utils.to_local(datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc), "Europe/Moscow")
    assert local.hour == 15


@pytest.mark.parametrize(
    "value, expected",
    [
        ("09:00", time(9, 0)),
        ("23:59", time(23, 59)),
        (" 07:05 ", time(7, 5)),
        ("9:00", None),
        ("24:00", None),
        ("12:60", None),
        ("noon", None),
        (None, None),
        (900, None),
    ],
)
def test_parse_time_of_day_is_strict(value, expected):
    assert dt_utils.parse_time_of_day(value) == expected


def test_format_local_is_human_readable():
    value = datetime(2025, 3, 17, 19, 30, tzinfo=timezone.utc)
    assert dt_utils.format_local(value, "America/Chicago") == "Mon, Mar 17 at 2:30 PM"

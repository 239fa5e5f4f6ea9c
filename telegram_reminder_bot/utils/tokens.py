"""Callback tokens carried by the inline buttons under each reminder.

A token has the shape ``<namespace>:<verb>:<reminder id>[:<param>]`` and must
fit Telegram's 64-byte ``callback_data`` limit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

DEFAULT_NAMESPACE = "rem"
MAX_TOKEN_BYTES = 64
MIN_SNOOZE_MINUTES = 1
MAX_SNOOZE_MINUTES = 7 * 24 * 60

VERB_DONE = "done"
VERB_SNOOZE = "sz"
VERB_CANCEL = "del"

_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,48}")
_MINUTES_RE = re.compile(r"[0-9]{1,5}")


@dataclass(frozen=True, slots=True)
class DoneAction:
    reminder_id: str


@dataclass(frozen=True, slots=True)
class SnoozeAction:
    reminder_id: str
    minutes: int


@dataclass(frozen=True, slots=True)
class CancelAction:
    reminder_id: str


@dataclass(frozen=True, slots=True)
class UnrecognizedAction:
    raw: str
    reason: str


Action = Union[DoneAction, SnoozeAction, CancelAction, UnrecognizedAction]


def _build(namespace: str, *parts: str) -> str:
    token = ":".join((namespace, *parts))
    if len(token.encode("utf-8")) > MAX_TOKEN_BYTES:
        raise ValueError(f"callback token too long: {token!r}")
    return token


def done_token(reminder_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return _build(namespace, VERB_DONE, reminder_id)


def snooze_token(reminder_id: str, minutes: int, namespace: str = DEFAULT_NAMESPACE) -> str:
    if not MIN_SNOOZE_MINUTES <= minutes <= MAX_SNOOZE_MINUTES:
        raise ValueError(f"snooze minutes out of range: {minutes}")
    return _build(namespace, VERB_SNOOZE, reminder_id, str(minutes))


def cancel_token(reminder_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return _build(namespace, VERB_CANCEL, reminder_id)


def parse_action(data: str | None, namespace: str = DEFAULT_NAMESPACE) -> Action:
    """Decode a callback token; anything malformed becomes :class:`UnrecognizedAction`."""

    raw = data or ""
    parts = raw.split(":")
    if len(parts) < 3 or parts[0] != namespace:
        return UnrecognizedAction(raw, "foreign namespace")
    _, verb, reminder_id, *rest = parts
    if not _ID_RE.fullmatch(reminder_id):
        return UnrecognizedAction(raw, "bad reminder id")

    if verb == VERB_DONE and not rest:
        return DoneAction(reminder_id)
    if verb == VERB_CANCEL and not rest:
        return CancelAction(reminder_id)
    if verb == VERB_SNOOZE and len(rest) == 1:
        value = rest[0]
        if not _MINUTES_RE.fullmatch(value):
            return UnrecognizedAction(raw, "snooze minutes not an integer")
        minutes = int(value)
        if not MIN_SNOOZE_MINUTES <= minutes <= MAX_SNOOZE_MINUTES:
            return UnrecognizedAction(raw, "snooze minutes out of range")
        return SnoozeAction(reminder_id, minutes)
    return UnrecognizedAction(raw, f"unknown verb {verb!r}")

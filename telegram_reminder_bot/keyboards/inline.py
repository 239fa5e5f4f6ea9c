from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..locales import get_text
from ..utils.tokens import DEFAULT_NAMESPACE, cancel_token, done_token, snooze_token

DEFAULT_SNOOZE_PRESETS = (10, 60)


@dataclass(frozen=True, slots=True)
class ActionButton:
    text: str
    token: str


Controls = Sequence[Sequence[ActionButton]]


def _snooze_label(language: str, minutes: int) -> str:
    if minutes % 60 == 0:
        return get_text(language, "button_snooze_hours", hours=str(minutes // 60))
    return get_text(language, "button_snooze_minutes", minutes=str(minutes))


def reminder_controls(
    reminder_id: str,
    namespace: str = DEFAULT_NAMESPACE,
    *,
    language: str = "en",
    snooze_presets: Iterable[int] = DEFAULT_SNOOZE_PRESETS,
) -> tuple[tuple[ActionButton, ...], ...]:
    """Done and snooze buttons on the first row, Delete on its own row."""

    first_row = [ActionButton(get_text(language, "button_done"), done_token(reminder_id, namespace))]
    for minutes in snooze_presets:
        first_row.append(ActionButton(_snooze_label(language, minutes), snooze_token(reminder_id, minutes, namespace)))
    delete_row = (ActionButton(get_text(language, "button_delete"), cancel_token(reminder_id, namespace)),)
    return tuple(first_row), delete_row


def to_inline_markup(controls: Controls) -> InlineKeyboardMarkup | None:
    rows = [
        [InlineKeyboardButton(text=button.text, callback_data=button.token) for button in row]
        for row in controls
        if row
    ]
    if not rows:
        return None
    return InlineKeyboardMarkup(inline_keyboard=rows)

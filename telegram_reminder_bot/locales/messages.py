from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class Texts:
    reminder_missing: str
    reminder_busy: str
    reminder_done: str
    reminder_rearmed: str
    reminder_retired: str
    reminder_snoozed: str
    reminder_cancelled: str
    button_done: str
    button_snooze_minutes: str
    button_snooze_hours: str
    button_delete: str


MESSAGES: Dict[str, Texts] = {
    "en": Texts(
        reminder_missing="That reminder no longer exists.",
        reminder_busy="This reminder is being sent right now, try again in a moment.",
        reminder_done="✅ Marked as done.",
        reminder_rearmed="✅ Done. Next reminder: {time}.",
        reminder_retired="✅ Done. This reminder has no further occurrences.",
        reminder_snoozed="⏰ Snoozed until {time}.",
        reminder_cancelled="🗑 Reminder deleted.",
        button_done="✅ Done",
        button_snooze_minutes="⏰ {minutes}m",
        button_snooze_hours="⏰ {hours}h",
        button_delete="🗑 Delete",
    ),
    "ru": Texts(
        reminder_missing="Это напоминание больше не существует.",
        reminder_busy="Напоминание сейчас отправляется, попробуйте чуть позже.",
        reminder_done="✅ Отмечено как выполненное.",
        reminder_rearmed="✅ Готово. Следующее напоминание: {time}.",
        reminder_retired="✅ Готово. Повторов больше не будет.",
        reminder_snoozed="⏰ Отложено до {time}.",
        reminder_cancelled="🗑 Напоминание удалено.",
        button_done="✅ Готово",
        button_snooze_minutes="⏰ {minutes} мин",
        button_snooze_hours="⏰ {hours} ч",
        button_delete="🗑 Удалить",
    ),
}


def get_text(language: str, key: str, **kwargs: str) -> str:
    texts = MESSAGES.get(language, MESSAGES["en"])
    value = getattr(texts, key)
    if kwargs:
        return value.format(**kwargs)
    return value

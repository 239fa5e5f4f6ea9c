from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

from aiogram.types import MessageEntity

from ..keyboards.inline import Controls, to_inline_markup
from ..models.reminder import TextSpan
from .telegram import TelegramSender

logger = logging.getLogger("telegram_reminder_bot.services.notifier")


class Notifier(Protocol):
    async def send(
        self,
        destination: int,
        text: str,
        *,
        spans: Sequence[TextSpan] = (),
        controls: Controls = (),
        idempotency_key: str | None = None,
    ) -> Any:
        """Deliver ``text`` to ``destination``; raising means the delivery failed."""


def to_message_entities(spans: Sequence[TextSpan]) -> list[MessageEntity] | None:
    if not spans:
        return None
    return [
        MessageEntity(
            type=span.style,
            offset=span.offset,
            length=span.length,
            url=span.url,
            custom_emoji_id=span.custom_emoji_id,
            language=span.language,
        )
        for span in spans
    ]


class TelegramNotifier:
    """Sends reminder messages through the shared :class:`TelegramSender` queue."""

    def __init__(self, sender: TelegramSender) -> None:
        self._sender = sender

    async def send(
        self,
        destination: int,
        text: str,
        *,
        spans: Sequence[TextSpan] = (),
        controls: Controls = (),
        idempotency_key: str | None = None,
    ) -> Any:
        op_id = idempotency_key or f"notify:{destination}:{hash(text)}"
        kwargs: dict[str, Any] = {"chat_id": destination, "text": text}
        entities = to_message_entities(spans)
        if entities:
            kwargs["entities"] = entities
        markup = to_inline_markup(controls)
        if markup is not None:
            kwargs["reply_markup"] = markup
        logger.debug("notify chat=%s op_id=%s", destination, op_id)
        return await self._sender.safe_tg_call("heavy", op_id, self._sender.bot.send_message, **kwargs)

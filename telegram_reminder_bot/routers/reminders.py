from __future__ import annotations

import logging

from aiogram import Router
from aiogram.types import CallbackQuery

from ..services.actions import ReminderActionHandler
from ..services.telegram import TelegramSender

logger = logging.getLogger("telegram_reminder_bot.routers.reminders")


def create_reminder_router(actions: ReminderActionHandler, sender: TelegramSender) -> Router:
    """Build the router that serves the buttons under delivered reminders."""

    router = Router(name=f"reminders:{actions.namespace}")

    @router.callback_query(lambda c: actions.owns(c.data))
    async def handle_reminder_callback(callback: CallbackQuery) -> None:
        message = callback.message
        owner_chat = message.chat.id if message is not None else callback.from_user.id
        result = await actions.handle(callback.data, owner_chat=owner_chat)

        await sender.safe_tg_call(
            "ui",
            f"rem:answer:{callback.id}",
            sender.bot.answer_callback_query,
            callback_query_id=callback.id,
            text=result.text,
        )
        if not result.applied or message is None:
            return
        try:
            await sender.safe_tg_call(
                "ui",
                f"rem:markup:{message.chat.id}:{message.message_id}",
                sender.bot.edit_message_reply_markup,
                chat_id=message.chat.id,
                message_id=message.message_id,
                reply_markup=None,
            )
        except Exception as exc:  # noqa: BLE001 - the update itself already succeeded
            logger.info("could not clear reminder controls chat=%s error=%s", message.chat.id, exc)

    return router

import asyncio
from types import SimpleNamespace

from aiogram.types import InlineKeyboardMarkup, MessageEntity

from telegram_reminder_bot.config import NetworkConfig
from telegram_reminder_bot.keyboards.inline import reminder_controls, to_inline_markup
from telegram_reminder_bot.models import TextSpan
from telegram_reminder_bot.services.notifier import TelegramNotifier, to_message_entities
from telegram_reminder_bot.services.telegram import TelegramSender
from telegram_reminder_bot.utils.metrics import MetricsCollector


class FakeBot(SimpleNamespace):
    def __init__(self):
        super().__init__()
        self.sent_messages: list[dict] = []

    async def send_message(self, **kwargs):
        self.sent_messages.append(kwargs)
        return kwargs


def test_controls_have_done_snooze_and_delete():
    rows = reminder_controls("abc")
    assert [[button.text for button in row] for row in rows] == [["✅ Done", "⏰ 10m", "⏰ 1h"], ["🗑 Delete"]]
    markup = to_inline_markup(rows)
    assert isinstance(markup, InlineKeyboardMarkup)
    assert markup.inline_keyboard[1][0].callback_data == "rem:del:abc"
    assert to_inline_markup(()) is None


def test_controls_follow_language_and_presets():
    rows = reminder_controls("abc", "todo", language="ru", snooze_presets=(5, 120))
    assert [button.text for button in rows[0]] == ["✅ Готово", "⏰ 5 мин", "⏰ 2 ч"]
    assert rows[0][2].token == "todo:sz:abc:120"


def test_spans_become_message_entities():
    entities = to_message_entities(
        [TextSpan(offset=0, length=3, style="bold"), TextSpan(offset=4, length=4, style="text_link", url="https://x.org")]
    )
    assert all(isinstance(entity, MessageEntity) for entity in entities)
    assert entities[1].type == "text_link"
    assert entities[1].url == "https://x.org"
    assert to_message_entities(()) is None


def test_telegram_notifier_sends_through_sender():
    async def scenario():
        bot = FakeBot()
        sender = TelegramSender(bot=bot, network=NetworkConfig(), metrics=MetricsCollector())
        notifier = TelegramNotifier(sender)

        stop = asyncio.Event()

        async def pump():
            while not stop.is_set():
                await sender.worker_tick()
                await asyncio.sleep(0.01)

        pump_task = asyncio.create_task(pump())
        try:
            await notifier.send(
                42,
                "Call mom",
                spans=[TextSpan(offset=5, length=3, style="italic")],
                controls=reminder_controls("r1"),
                idempotency_key="reminder:r1:2025-03-17T14:00:00+00:00",
            )
            await notifier.send(42, "Call mom", idempotency_key="reminder:r1:2025-03-17T14:00:00+00:00")
        finally:
            stop.set()
            await pump_task

        assert len(bot.sent_messages) == 1
        message = bot.sent_messages[0]
        assert message["chat_id"] == 42
        assert message["text"] == "Call mom"
        assert message["entities"][0].type == "italic"
        assert message["reply_markup"].inline_keyboard[0][0].callback_data == "rem:done:r1"
        assert "parse_mode" not in message

    asyncio.run(scenario())

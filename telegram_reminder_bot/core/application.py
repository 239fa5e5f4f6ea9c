from __future__ import annotations

import logging
from contextlib import suppress
from datetime import timedelta

from aiogram import Bot

from ..config import Config
from ..jobs.scheduler import Scheduler
from ..logging_config import setup_logging
from ..routers.reminders import create_reminder_router
from ..services.actions import ReminderActionHandler
from ..services.dispatcher import ReminderDispatcher
from ..services.leadership import LeadershipCoordinator, make_instance_id
from ..services.notifier import TelegramNotifier
from ..services.telegram import TelegramSender
from ..storage.factory import create_store
from ..utils.locks import LeaseLock
from ..utils.metrics import MetricsCollector
from ..utils.recurrence import RecurrenceCalculator
from .dispatcher import create_dispatcher

logger = logging.getLogger("telegram_reminder_bot.core.application")


class Application:
    def __init__(self, *, config: Config) -> None:
        self._config = config
        setup_logging(config.bot.logs_dir, config.bot.log_level)
        config.bot.data_dir.mkdir(parents=True, exist_ok=True)

        self._instance_id = make_instance_id("bot")
        self._store = create_store(config.bot)
        self._metrics = MetricsCollector()
        self._bot = Bot(token=config.bot.token)
        self._sender = TelegramSender(bot=self._bot, network=config.network, metrics=self._metrics)
        self._calculator = RecurrenceCalculator(config.bot.timezone)
        self._reminder_dispatcher = ReminderDispatcher(
            store=self._store,
            notifier=TelegramNotifier(self._sender),
            calculator=self._calculator,
            instance_id=self._instance_id,
            lease_lock=LeaseLock(self._store.reminder_leases(), name="reminder"),
            batch_size=config.scheduler.batch_size,
            lease_seconds=config.scheduler.lease_seconds,
            failure_backoff=timedelta(minutes=config.scheduler.failure_backoff_minutes),
            namespace=config.scheduler.action_namespace,
            language=config.bot.language,
            metrics=self._metrics,
        )
        self._scheduler = Scheduler(
            scheduler_config=config.scheduler,
            dispatcher=self._reminder_dispatcher,
            telegram_sender=self._sender,
            metrics=self._metrics,
        )
        self._actions = ReminderActionHandler(
            store=self._store,
            calculator=self._calculator,
            namespace=config.scheduler.action_namespace,
            language=config.bot.language,
        )
        self._dispatcher = create_dispatcher(create_reminder_router(self._actions, self._sender))
        leadership = config.leadership
        self._leadership = LeadershipCoordinator(
            LeaseLock(self._store.named_leases(), name="leadership"),
            key=leadership.lock_key,
            owner_id=self._instance_id,
            lease_duration=timedelta(seconds=leadership.lease_seconds),
            renew_interval=timedelta(seconds=leadership.renew_seconds),
            retry_delay=timedelta(seconds=leadership.retry_seconds),
            on_lost=self._dispatcher.stop_polling,
        )

    @property
    def instance_id(self) -> str:
        return self._instance_id

    async def run(self) -> None:
        """Poll reminders on every instance; long-poll Telegram only while leader."""

        logger.info("starting instance=%s", self._instance_id)
        await self._scheduler.start()
        try:
            while True:
                await self._leadership.wait_for_acquire()
                self._leadership.start_renewal()
                try:
                    await self._dispatcher.start_polling(self._bot, handle_signals=False)
                finally:
                    await self._leadership.release()
                logger.info("polling stopped, competing for leadership again")
        finally:
            with suppress(Exception):
                await self._scheduler.shutdown()
            await self._store.close()
            await self._bot.session.close()

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import SchedulerConfig
from ..services.dispatcher import ReminderDispatcher
from ..services.telegram import TelegramSender
from ..utils.datetime import now_utc
from ..utils.metrics import MetricsCollector

logger = logging.getLogger("telegram_reminder_bot.jobs.scheduler")


class Scheduler:
    def __init__(
        self,
        *,
        scheduler_config: SchedulerConfig,
        dispatcher: ReminderDispatcher,
        telegram_sender: TelegramSender,
        metrics: MetricsCollector,
    ) -> None:
        self._scheduler = AsyncIOScheduler(timezone="UTC", job_defaults={"coalesce": True, "misfire_grace_time": 30})
        self._config = scheduler_config
        self._dispatcher = dispatcher
        self._sender = telegram_sender
        self._metrics = metrics

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self._reminder_job,
            "interval",
            id="reminder-poll",
            seconds=self._config.poll_seconds,
            max_instances=1,
            coalesce=True,
            next_run_time=now_utc(),
        )
        self._scheduler.add_job(
            self._sender.worker_tick,
            "interval",
            id="telegram-sender",
            seconds=0.3,
            max_instances=3,
            coalesce=True,
        )
        self._scheduler.add_job(self._metrics_job, "interval", id="metrics", minutes=5, max_instances=1, coalesce=True)
        self._scheduler.start()
        logger.info("scheduler started poll=%ss", self._config.poll_seconds)

    async def shutdown(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("scheduler stopped")

    async def _reminder_job(self) -> None:
        await self._dispatcher.tick()

    async def _metrics_job(self) -> None:
        await self._metrics.log_summary()

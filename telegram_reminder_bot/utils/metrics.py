from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, fields
from typing import Callable, Deque

HOUR = 3600.0


@dataclass
class Metrics:
    ticks: int = 0
    due: int = 0
    sends: int = 0
    failures: int = 0
    lock_skips: int = 0
    retired: int = 0
    tick_errors: int = 0
    retries: int = 0
    timeouts: int = 0
    queue_size: int = 0


_COUNTERS = frozenset(f.name for f in fields(Metrics))


class RollingWindow:
    """Timestamped samples kept for at most ``horizon`` seconds."""

    def __init__(self, horizon: float = HOUR, clock: Callable[[], float] = time.time) -> None:
        self._horizon = horizon
        self._clock = clock
        self._samples: Deque[tuple[float, float]] = deque()

    def add(self, value: float = 1.0) -> None:
        now = self._clock()
        self._samples.append((now, value))
        while self._samples and self._samples[0][0] < now - self._horizon:
            self._samples.popleft()

    def values(self, window_seconds: float) -> list[float]:
        since = self._clock() - window_seconds
        return [value for ts, value in self._samples if ts >= since]


class MetricsCollector:
    """In-process counters for the dispatch loop and the Telegram sender."""

    def __init__(self, logger: logging.Logger | None = None, clock: Callable[[], float] = time.time) -> None:
        self._metrics = Metrics()
        self._lock = asyncio.Lock()
        self._logger = logger or logging.getLogger("telegram_reminder_bot.metrics")
        self._latencies = RollingWindow(clock=clock)
        self._events = {"retries": RollingWindow(clock=clock), "timeouts": RollingWindow(clock=clock)}

    async def incr(self, **kwargs: int) -> None:
        async with self._lock:
            for key, value in kwargs.items():
                if key in _COUNTERS and value:
                    setattr(self._metrics, key, getattr(self._metrics, key) + value)

    async def set(self, **kwargs: int) -> None:
        async with self._lock:
            for key, value in kwargs.items():
                if key in _COUNTERS:
                    setattr(self._metrics, key, value)

    async def record_latency(self, latency: float) -> None:
        async with self._lock:
            self._latencies.add(latency)

    async def record_retry(self) -> None:
        await self._record_event("retries")

    async def record_timeout(self) -> None:
        await self._record_event("timeouts")

    async def _record_event(self, kind: str) -> None:
        async with self._lock:
            self._events[kind].add()
            setattr(self._metrics, kind, getattr(self._metrics, kind) + 1)

    async def snapshot(self) -> Metrics:
        async with self._lock:
            return Metrics(**asdict(self._metrics))

    async def percentiles(self, window_seconds: int = 3600) -> tuple[float, float]:
        """Median and 95th percentile call latency over the window."""

        async with self._lock:
            values = sorted(self._latencies.values(window_seconds))
        if not values:
            return 0.0, 0.0
        p95_index = min(max(int(len(values) * 0.95) - 1, 0), len(values) - 1)
        return values[len(values) // 2], values[p95_index]

    async def window_count(self, kind: str, window_seconds: int) -> int:
        async with self._lock:
            return len(self._events[kind].values(window_seconds))

    async def log_summary(self) -> None:
        summary = await self.snapshot()
        p50, p95 = await self.percentiles(300)
        self._logger.info(
            "metrics: ticks=%s due=%s sends=%s failures=%s lock_skips=%s retired=%s tick_errors=%s "
            "retries_5m=%s timeouts_5m=%s queue=%s latency_p50=%.3f latency_p95=%.3f",
            summary.ticks,
            summary.due,
            summary.sends,
            summary.failures,
            summary.lock_skips,
            summary.retired,
            summary.tick_errors,
            await self.window_count("retries", 300),
            await self.window_count("timeouts", 300),
            summary.queue_size,
            p50,
            p95,
        )

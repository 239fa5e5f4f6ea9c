from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError, TelegramRetryAfter

from ..config import NetworkConfig
from ..utils.metrics import MetricsCollector

logger = logging.getLogger("telegram_reminder_bot.services.telegram")
audit_logger = logging.getLogger("telegram_reminder_bot.audit")

DEDUP_WINDOW_SECONDS = 60

Profile = Literal["ui", "heavy"]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    retries: int
    request_timeout: int
    backoff_start: float = 0.0
    backoff_cap: float = 0.0
    jitter: tuple[float, float] = (0.0, 0.0)

    @classmethod
    def for_profile(cls, profile: Profile, network: NetworkConfig) -> "RetryPolicy":
        if profile == "ui":
            return cls(
                retries=network.ui_retries,
                request_timeout=int(max(network.ui_connect_timeout, network.ui_read_timeout)),
                jitter=(network.ui_jitter_min, network.ui_jitter_max),
            )
        return cls(
            retries=network.heavy_max_retries,
            request_timeout=int(max(network.connect_timeout, network.request_timeout)),
            backoff_start=network.heavy_backoff_start,
            backoff_cap=network.heavy_backoff_cap,
        )

    def delay(self, attempt: int) -> float:
        if self.backoff_start:
            return min(self.backoff_start * (2 ** attempt), self.backoff_cap)
        return random.uniform(*self.jitter)


class RecentOperations:
    """Operation ids accepted within the last ``window`` seconds."""

    def __init__(self, window: float = DEDUP_WINDOW_SECONDS) -> None:
        self._window = window
        self._seen: OrderedDict[str, float] = OrderedDict()

    def claim(self, op_id: str, now: float) -> bool:
        while self._seen:
            oldest, seen_at = next(iter(self._seen.items()))
            if seen_at >= now - self._window:
                break
            self._seen.pop(oldest)
        if op_id in self._seen:
            return False
        self._seen[op_id] = now
        return True

    def forget(self, op_id: str) -> None:
        self._seen.pop(op_id, None)


@dataclass(slots=True)
class QueuedCall:
    op_id: str
    policy: RetryPolicy
    func: Callable[..., Awaitable[Any]]
    args: tuple[Any, ...]
    kwargs: dict[str, Any]
    future: asyncio.Future[Any] = field(repr=False)


class TelegramSender:
    """Serialises Bot API calls through one queue with per-profile retries.

    ``ui`` calls (callback answers, edits) retry briefly with jitter;
    ``heavy`` calls (reminder deliveries) back off exponentially. An
    ``op_id`` accepted within the last minute is not executed again, unless
    that earlier call failed.
    """

    def __init__(
        self,
        *,
        bot,
        network: NetworkConfig,
        metrics: MetricsCollector,
    ) -> None:
        self._bot = bot
        self._metrics = metrics
        self._policies = {profile: RetryPolicy.for_profile(profile, network) for profile in ("ui", "heavy")}
        self._queue: asyncio.Queue[QueuedCall] = asyncio.Queue()
        self._recent = RecentOperations()
        self._lock = asyncio.Lock()

    @property
    def bot(self):
        return self._bot

    def queue_size(self) -> int:
        return self._queue.qsize()

    async def safe_tg_call(
        self,
        profile: Profile,
        op_id: str,
        func: Callable[..., Awaitable[Any]],
        /,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Queue ``func`` and wait until the sender pump has executed it.

        Resolves to ``None`` when ``op_id`` was deduplicated or Telegram
        reported the edit as a no-op.
        """

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(
            QueuedCall(op_id=op_id, policy=self._policies[profile], func=func, args=args, kwargs=kwargs, future=future)
        )
        await self._metrics.set(queue_size=self._queue.qsize())
        return await future

    async def worker_tick(self) -> None:
        processed = 0
        while not self._queue.empty():
            await self._process(self._queue.get_nowait())
            processed += 1
        if processed:
            await self._metrics.set(queue_size=self._queue.qsize())

    async def _process(self, call: QueuedCall) -> None:
        async with self._lock:
            claimed = self._recent.claim(call.op_id, time.monotonic())
        if not claimed:
            audit_logger.info(json.dumps({"event": "SEND_DEDUP", "op_id": call.op_id}))
            _resolve(call.future, None)
            return

        started = time.monotonic()
        try:
            result = await self._attempt(call)
        except Exception as exc:
            async with self._lock:
                self._recent.forget(call.op_id)
            if not call.future.done():
                call.future.set_exception(exc)
            return
        _resolve(call.future, result)
        await self._metrics.record_latency(time.monotonic() - started)

    async def _attempt(self, call: QueuedCall) -> Any:
        policy = call.policy
        kwargs = dict(call.kwargs)
        kwargs.setdefault("request_timeout", policy.request_timeout)
        attempt = 0
        while True:
            try:
                result = await call.func(*call.args, **kwargs)
            except TelegramRetryAfter as exc:
                if attempt >= policy.retries:
                    logger.warning("telegram flood control op_id=%s retry_after=%s", call.op_id, exc.retry_after)
                    raise
                await self._pause(call.op_id, float(exc.retry_after))
                attempt += 1
                continue
            except TelegramBadRequest as exc:
                if "message is not modified" in str(exc).lower():
                    logger.info("message not modified op_id=%s", call.op_id)
                    return None
                logger.warning("telegram rejected op_id=%s error=%s", call.op_id, exc)
                raise
            except (TelegramNetworkError, asyncio.TimeoutError) as exc:
                if attempt >= policy.retries:
                    if isinstance(exc, asyncio.TimeoutError):
                        await self._metrics.record_timeout()
                    logger.warning("telegram call failed op_id=%s attempts=%s error=%s", call.op_id, attempt + 1, exc)
                    raise
                await self._pause(call.op_id, policy.delay(attempt))
                attempt += 1
                continue
            await self._metrics.incr(sends=1)
            return result

    async def _pause(self, op_id: str, delay: float) -> None:
        audit_logger.info(json.dumps({"event": "NETWORK_RETRY", "op_id": op_id, "delay": round(delay, 3)}))
        await self._metrics.record_retry()
        await asyncio.sleep(delay)


def _resolve(future: asyncio.Future[Any], value: Any) -> None:
    if not future.done():
        future.set_result(value)

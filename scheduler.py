#!/usr/bin/env python3
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from analysis.models import Coin, SwapType, TradeTask
from config import ConfigurationError, StreamSettings
from constants import SCHEDULER_TICK_SECONDS
from services.telegram_notifier import TelegramNotifier
from trade_pipeline import TradePipeline

logger = logging.getLogger(__name__)

# Remaining window time is logged at most this often.
_COUNTDOWN_LOG_SECONDS = 60


@dataclass(frozen=True)
class TradeWindow:
    """Half-open interval [start, end) in Unix seconds."""
    start: float
    end: float

    def contains(self, moment: float) -> bool:
        return self.start <= moment < self.end

    @property
    def length(self) -> float:
        return self.end - self.start


def draw_trigger_time(window: TradeWindow, rng: random.Random) -> float:
    """Uniform draw that never lands on the window end."""
    trigger = window.start + rng.random() * window.length
    if trigger >= window.end:
        trigger = window.start
    return trigger


def _format_moment(moment: float) -> str:
    return datetime.fromtimestamp(moment, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')


class WindowScheduler:
    """
    Spreads the daily volume over `streams_per_day` consecutive windows.

    Each window gets one random trigger time. From the trigger onward every
    tick attempts the trade until the pipeline reports a broadcast; a window
    that closes without one is reported as missed and never retried.
    """

    def __init__(
        self,
        stream: StreamSettings,
        pool_id: int,
        token_in: Coin,
        token_out: Coin,
        pipeline: TradePipeline,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        tick_seconds: float = SCHEDULER_TICK_SECONDS,
        notifier: Optional[TelegramNotifier] = None,
    ) -> None:
        if stream.streams_per_day <= 0:
            raise ConfigurationError("streams_per_day must be a positive integer.")
        self.stream = stream
        self.pool_id = pool_id
        self.token_in = token_in
        self.token_out = token_out
        self.pipeline = pipeline
        self.notifier = notifier
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        self.window: Optional[TradeWindow] = None
        self.trigger_time: Optional[float] = None
        self.trade_executed = False
        self.windows_started = 0
        self.windows_missed = 0
        self._last_countdown_log: Optional[float] = None

    def build_task(self) -> TradeTask:
        return TradeTask(
            pool_id=self.pool_id,
            token_in=self.token_in,
            token_out=self.token_out,
            amount=self.stream.amount_per_stream,
            swap_type=SwapType(self.stream.swap_type),
            min_price=self.stream.min_price,
        )

    async def _open_window(self, now: float) -> None:
        if self.window is not None and not self.trade_executed:
            self.windows_missed += 1
            logger.warning(
                "!!! Trade window %s - %s closed without a trade",
                _format_moment(self.window.start), _format_moment(self.window.end),
            )
            if self.notifier:
                await self.notifier.notify_window_missed(
                    _format_moment(self.window.start), _format_moment(self.window.end)
                )

        self.window = TradeWindow(start=now, end=now + self.stream.window_seconds)
        self.trigger_time = draw_trigger_time(self.window, self._rng)
        self.trade_executed = False
        self.windows_started += 1
        self._last_countdown_log = None
        logger.info(
            "New trade window %s - %s, trade scheduled at %s",
            _format_moment(self.window.start), _format_moment(self.window.end),
            _format_moment(self.trigger_time),
        )

    def _log_countdown(self, now: float) -> None:
        if self._last_countdown_log is not None and now - self._last_countdown_log < _COUNTDOWN_LOG_SECONDS:
            return
        self._last_countdown_log = now
        if self.trade_executed:
            logger.debug("Trade executed; %.0fs until the next window", self.window.end - now)
        else:
            logger.debug("%.0fs until the scheduled trade", self.trigger_time - now)

    async def tick(self, now: float) -> None:
        """Advances the scheduler by one step at time `now`."""
        if self.window is None or now >= self.window.end:
            await self._open_window(now)

        if self.trade_executed or now < self.trigger_time:
            self._log_countdown(now)
            return

        task = self.build_task()
        logger.info(">>> Executing trade of %s %s on pool %s", task.amount, task.swap_type.value, task.pool_id)
        try:
            self.trade_executed = await self.pipeline.execute(task)
        except Exception:
            logger.exception("Unexpected error during trade execution")
            self.trade_executed = False

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "Starting trade stream: %s streams per day, %s micro-units per stream",
            self.stream.streams_per_day, self.stream.amount_per_stream,
        )
        while not stop_event.is_set():
            await self.tick(self._clock())
            if stop_event.is_set():
                break
            await self._sleep(self.tick_seconds)
        logger.info("Trade stream stopped")

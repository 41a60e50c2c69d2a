import asyncio
import logging
import random

import pytest

from analysis.models import Coin, SwapType
from config import ConfigurationError, StreamSettings
from scheduler import TradeWindow, WindowScheduler, draw_trigger_time

START = 1_700_000_000.0


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


class StubPipeline:
    def __init__(self, results=None):
        self.results = list(results or [])
        self.tasks = []

    async def execute(self, task):
        self.tasks.append(task)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return True


class StubNotifier:
    def __init__(self):
        self.missed = []

    async def notify_window_missed(self, window_start, window_end):
        self.missed.append((window_start, window_end))


def _stream(streams_per_day=24, daily_amount=24_000_000, swap_type='amount_out', min_price=0.5):
    return StreamSettings(
        daily_amount=daily_amount,
        swap_type=swap_type,
        streams_per_day=streams_per_day,
        min_price=min_price,
    )


def _scheduler(pipeline, stream=None, rng=None, notifier=None, **kwargs):
    return WindowScheduler(
        stream or _stream(),
        1721,
        Coin.WLibra,
        Coin.USDC,
        pipeline,
        rng=rng or FixedRandom(0.5),
        notifier=notifier,
        **kwargs,
    )


def test_rejects_non_positive_streams_per_day():
    with pytest.raises(ConfigurationError):
        _scheduler(StubPipeline(), stream=_stream(streams_per_day=0))


def test_trigger_time_always_inside_window():
    rng = random.Random(7)
    window = TradeWindow(start=START, end=START + 3600)
    for _ in range(1000):
        trigger = draw_trigger_time(window, rng)
        assert window.contains(trigger)


def test_trigger_time_never_equals_window_end():
    window = TradeWindow(start=START, end=START + 3600)
    assert draw_trigger_time(window, FixedRandom(0.9999999999999999)) < window.end


@pytest.mark.asyncio
async def test_thousand_hourly_windows_keep_trigger_inside_window():
    pipeline = StubPipeline()
    scheduler = _scheduler(pipeline, rng=random.Random(1234))

    now = START
    for _ in range(1000):
        await scheduler.tick(now)
        assert scheduler.window.end - scheduler.window.start == pytest.approx(3600)
        assert scheduler.window.start <= scheduler.trigger_time < scheduler.window.end
        now = scheduler.window.end

    assert scheduler.windows_started == 1000


@pytest.mark.asyncio
async def test_no_execution_before_trigger_time():
    pipeline = StubPipeline()
    scheduler = _scheduler(pipeline, rng=FixedRandom(0.5))

    await scheduler.tick(START)
    await scheduler.tick(START + 1799)

    assert pipeline.tasks == []
    assert scheduler.trigger_time == START + 1800


@pytest.mark.asyncio
async def test_executes_at_most_once_per_window():
    pipeline = StubPipeline()
    scheduler = _scheduler(pipeline, rng=FixedRandom(0.0))

    for offset in range(0, 3600, 60):
        await scheduler.tick(START + offset)

    assert len(pipeline.tasks) == 1
    task = pipeline.tasks[0]
    assert task.amount == 1_000_000
    assert task.swap_type is SwapType.AMOUNT_OUT
    assert task.pool_id == 1721
    assert task.token_in is Coin.WLibra
    assert task.min_price == 0.5


@pytest.mark.asyncio
async def test_failed_attempt_is_retried_within_window():
    pipeline = StubPipeline(results=[False, False, True])
    scheduler = _scheduler(pipeline, rng=FixedRandom(0.0))

    for offset in range(5):
        await scheduler.tick(START + offset)

    assert len(pipeline.tasks) == 3
    assert scheduler.trade_executed is True


@pytest.mark.asyncio
async def test_unexpected_pipeline_error_does_not_stop_scheduler(caplog):
    pipeline = StubPipeline(results=[RuntimeError("boom"), True])
    scheduler = _scheduler(pipeline, rng=FixedRandom(0.0))

    with caplog.at_level(logging.ERROR):
        await scheduler.tick(START)
        assert scheduler.trade_executed is False
        await scheduler.tick(START + 1)

    assert scheduler.trade_executed is True
    assert "Unexpected error during trade execution" in caplog.text


@pytest.mark.asyncio
async def test_missed_window_is_reported_and_not_retried(caplog):
    pipeline = StubPipeline(results=[False] * 10)
    notifier = StubNotifier()
    scheduler = _scheduler(pipeline, rng=FixedRandom(0.5), notifier=notifier)

    with caplog.at_level(logging.WARNING):
        await scheduler.tick(START)
        assert scheduler.windows_missed == 0
        await scheduler.tick(START + 1800)
        await scheduler.tick(START + 3600)

    assert scheduler.windows_missed == 1
    assert len(notifier.missed) == 1
    assert "closed without a trade" in caplog.text
    # The new window starts fresh and schedules its own trigger.
    assert scheduler.window.start == START + 3600
    assert scheduler.trade_executed is False
    assert len(pipeline.tasks) == 1


@pytest.mark.asyncio
async def test_executed_window_is_not_reported_as_missed():
    pipeline = StubPipeline()
    notifier = StubNotifier()
    scheduler = _scheduler(pipeline, rng=FixedRandom(0.0), notifier=notifier)

    await scheduler.tick(START)
    await scheduler.tick(START + 3600)

    assert scheduler.windows_missed == 0
    assert notifier.missed == []
    assert len(pipeline.tasks) == 2


@pytest.mark.asyncio
async def test_run_stops_when_event_is_set():
    pipeline = StubPipeline()
    stop_event = asyncio.Event()
    clock_values = iter(START + i for i in range(100))
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            stop_event.set()

    scheduler = _scheduler(
        pipeline,
        rng=FixedRandom(0.0),
        clock=lambda: next(clock_values),
        sleep=fake_sleep,
        tick_seconds=1.0,
    )

    await scheduler.run(stop_event)

    assert sleeps == [1.0, 1.0, 1.0]
    assert len(pipeline.tasks) == 1


@pytest.mark.asyncio
async def test_run_exits_immediately_when_already_stopped():
    pipeline = StubPipeline()
    stop_event = asyncio.Event()
    stop_event.set()

    scheduler = _scheduler(pipeline, clock=lambda: START)
    await scheduler.run(stop_event)

    assert scheduler.window is None
    assert pipeline.tasks == []

"""Tests for KeepAliveScheduler using a controllable clock."""

from datetime import datetime, timedelta, timezone

import pytest

from fincoach.core.config import KeepAliveConfig, WarningMark
from fincoach.core.keepalive import KeepAliveScheduler


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return []


@pytest.fixture
async def scheduler(clock, events):
    config = KeepAliveConfig(
        poll_interval_seconds=60,
        keep_alive_marks_seconds=[570, 270],
        warning_marks=[WarningMark(at_seconds=285), WarningMark(at_seconds=885, minutes_remaining=2)],
        max_session_minutes=30,
    )

    async def on_warning(minutes_remaining):
        events.append(("warning", minutes_remaining))

    s = KeepAliveScheduler(
        on_keep_alive=lambda: events.append("keep_alive"),
        on_warning=on_warning,
        on_timeout=lambda: events.append("timeout"),
        config=config,
        clock=clock,
    )
    yield s
    s.stop()


def test_marks_sorted():
    config = KeepAliveConfig(keep_alive_marks_seconds=[570, 270])
    assert config.keep_alive_marks_seconds == [270, 570]


@pytest.mark.asyncio
async def test_keep_alive_fires_when_mark_crossed(scheduler, clock, events):
    scheduler.start()
    clock.advance(260)
    await scheduler.check()
    assert events == []

    clock.advance(20)  # 280s: past 270
    await scheduler.check()
    assert events == ["keep_alive"]

    clock.advance(10)  # 290s: past the 285 warning
    await scheduler.check()
    assert events == ["keep_alive", ("warning", 1)]


@pytest.mark.asyncio
async def test_mark_fires_once(scheduler, clock, events):
    scheduler.start()
    clock.advance(275)
    await scheduler.check()
    await scheduler.check()
    assert events.count("keep_alive") == 1


@pytest.mark.asyncio
async def test_several_marks_crossed_in_one_poll(scheduler, clock, events):
    scheduler.start()
    clock.advance(600)
    await scheduler.check()
    assert events.count("keep_alive") == 2
    assert ("warning", 1) in events


@pytest.mark.asyncio
async def test_marks_already_past_at_start_do_not_fire(scheduler, clock, events):
    scheduler.start(session_start=clock() - timedelta(seconds=300))
    clock.advance(5)
    await scheduler.check()
    assert "keep_alive" not in events


@pytest.mark.asyncio
async def test_timeout_stops_scheduler(scheduler, clock, events):
    scheduler.start()
    clock.advance(30 * 60)
    await scheduler.check()
    assert events[-1] == "timeout"
    assert ("warning", 2) in events
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_stop_prevents_further_callbacks(scheduler, clock, events):
    scheduler.start()
    scheduler.stop()
    clock.advance(600)
    await scheduler.check()
    assert events == []
    assert scheduler.elapsed_seconds() == 0.0


@pytest.mark.asyncio
async def test_session_duration_format(scheduler, clock):
    scheduler.start()
    clock.advance(125)
    assert scheduler.session_duration() == "02:05"


@pytest.mark.asyncio
async def test_failing_callback_does_not_break_polling(clock):
    def boom():
        raise RuntimeError("socket closed")

    config = KeepAliveConfig(keep_alive_marks_seconds=[10], warning_marks=[])
    s = KeepAliveScheduler(on_keep_alive=boom, config=config, clock=clock)
    s.start()
    clock.advance(20)
    await s.check()
    assert s.is_running
    s.stop()

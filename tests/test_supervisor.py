import asyncio
from dataclasses import replace

import pytest

from sniper_risk.config import FeedExhaustionPolicy
from sniper_risk.core import Supervisor
from sniper_risk.errors import (
    FatalConfiguration,
    FeedUnavailable,
    PositionAlreadyMonitored,
    SupervisorClosed,
)
from sniper_risk.events import EventType

from conftest import FailingFeed, RecordingSink, ScriptedPriceFeed, StubbornFeed, wait_until

QUIET = (1.0, 1.0, 100.0)
CRASH = (2.0, 0.3, 100.0)


def build_supervisor(feed, sink, events, cfg, clock):
    return Supervisor(feed, sink, events=events, monitor_config=cfg, moon_fraction=0.2, clock=clock)


@pytest.mark.asyncio
async def test_open_starts_monitor(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    async with build_supervisor(feed, sink, events, fast_config, clock) as supervisor:
        monitor = supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)

        assert "AAA" in supervisor
        assert len(supervisor) == 1
        assert supervisor.get("AAA") is monitor
        assert monitor.running
        assert monitor.position.moon_remaining == pytest.approx(0.1)

        opened = events.of_type(EventType.POSITION_OPENED)
        assert opened[0].token_id == "AAA"
        assert opened[0].data["stake"] == 0.5

    assert len(supervisor) == 0


@pytest.mark.asyncio
async def test_duplicate_open_rejected(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    async with build_supervisor(feed, sink, events, fast_config, clock) as supervisor:
        first = supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
        with pytest.raises(PositionAlreadyMonitored):
            supervisor.open("AAA", entry_price=2.0, entry_reserve=50.0, stake=1.0)

        assert len(supervisor) == 1
        assert supervisor.get("AAA") is first


@pytest.mark.asyncio
async def test_invalid_parameters_start_nothing(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    async with build_supervisor(feed, sink, events, fast_config, clock) as supervisor:
        with pytest.raises(FatalConfiguration):
            supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.0)
        with pytest.raises(FatalConfiguration):
            supervisor.open("BBB", entry_price=-1.0, entry_reserve=100.0, stake=1.0)

        assert len(supervisor) == 0
        assert events.of_type(EventType.POSITION_OPENED) == []


@pytest.mark.asyncio
async def test_closed_position_is_removed(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET, CRASH])
    async with build_supervisor(feed, sink, events, fast_config, clock) as supervisor:
        supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
        await asyncio.wait_for(supervisor.wait_idle(), 2)

        assert "AAA" not in supervisor
        assert len(sink.calls) == 1

        # Same token may be opened again once its monitor is gone
        feed.calls.clear()
        supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
        assert "AAA" in supervisor


@pytest.mark.asyncio
async def test_monitors_are_independent(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    async with build_supervisor(feed, sink, events, fast_config, clock) as supervisor:
        supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
        # Entry far above the scripted price: this one panics immediately
        supervisor.open("BBB", entry_price=10.0, entry_reserve=100.0, stake=0.5)

        await wait_until(lambda: "BBB" not in supervisor)
        assert "AAA" in supervisor
        assert supervisor.get("AAA").running
        assert [c[0] for c in sink.calls] == ["BBB"]


@pytest.mark.asyncio
async def test_fail_open_exhaustion_removes_monitor(sink, events, fast_config, clock):
    cfg = replace(fast_config, feed_exhaustion_policy=FeedExhaustionPolicy.FAIL_OPEN)
    feed = FailingFeed(FeedUnavailable("down"))
    async with build_supervisor(feed, sink, events, cfg, clock) as supervisor:
        monitor = supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
        await asyncio.wait_for(supervisor.wait_idle(), 2)

        assert "AAA" not in supervisor
        assert sink.calls == []
        assert monitor.position.remaining_stake == 0.5


def test_on_closed_is_idempotent(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    supervisor = build_supervisor(feed, sink, events, fast_config, clock)
    supervisor.on_closed("UNKNOWN")
    supervisor.on_closed("UNKNOWN")
    assert len(supervisor) == 0


@pytest.mark.asyncio
async def test_close_stops_one_monitor(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    async with build_supervisor(feed, sink, events, fast_config, clock) as supervisor:
        supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
        supervisor.open("BBB", entry_price=1.0, entry_reserve=100.0, stake=0.5)

        position = await supervisor.close("AAA")

        assert position.token_id == "AAA"
        assert "AAA" not in supervisor
        assert "BBB" in supervisor
        assert await supervisor.close("AAA") is None
        supervisor.on_closed("AAA")


@pytest.mark.asyncio
async def test_shutdown_cancels_every_monitor(clock, sink, events, fast_config):
    feed = ScriptedPriceFeed(clock, [QUIET])
    supervisor = build_supervisor(feed, sink, events, fast_config, clock)
    monitors = [
        supervisor.open(token, entry_price=1.0, entry_reserve=100.0, stake=0.5)
        for token in ("AAA", "BBB", "CCC")
    ]
    await wait_until(lambda: all(m.ticks > 0 for m in monitors))

    await supervisor.shutdown()

    assert len(supervisor) == 0
    assert all(m.task.cancelled() for m in monitors)
    assert sink.calls == []
    await asyncio.wait_for(supervisor.wait_idle(), 1)


@pytest.mark.asyncio
async def test_shutdown_finishes_when_cancel_is_swallowed(clock, sink, events, slow_config):
    feed = StubbornFeed(delay=0.03)
    supervisor = build_supervisor(feed, sink, events, slow_config, clock)
    monitor = supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
    await asyncio.wait_for(feed.entered.wait(), 2)

    await asyncio.wait_for(supervisor.shutdown(), 1)

    assert not monitor.running
    assert len(supervisor) == 0


@pytest.mark.asyncio
async def test_open_rejected_during_shutdown(clock, events, fast_config):
    gate = asyncio.Event()
    sink = RecordingSink(gate=gate)
    feed = ScriptedPriceFeed(clock, [CRASH])
    supervisor = build_supervisor(feed, sink, events, fast_config, clock)
    supervisor.open("AAA", entry_price=1.0, entry_reserve=100.0, stake=0.5)
    await asyncio.wait_for(sink.started.wait(), 2)

    # AAA is stuck mid-liquidation, so shutdown cannot finish yet
    shutdown = asyncio.create_task(supervisor.shutdown())
    await asyncio.sleep(0.01)
    assert not shutdown.done()

    with pytest.raises(SupervisorClosed):
        supervisor.open("BBB", entry_price=1.0, entry_reserve=100.0, stake=0.5)
    assert "BBB" not in supervisor

    gate.set()
    await asyncio.wait_for(shutdown, 1)
    assert len(supervisor) == 0
    assert [c[0] for c in sink.calls] == ["AAA"]

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional

import pytest

from sniper_risk.config import ExitThresholds, FeedExhaustionPolicy, MonitorConfig
from sniper_risk.errors import ExecutionFailed
from sniper_risk.events import EventType, MonitorEvent
from sniper_risk.models import Position, PriceObservation


class FakeClock:
    """Manually driven time source."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ScriptedPriceFeed:
    """
    Replays a script of (time, price, reserve) steps or exceptions.

    Every token walks the script independently. Each observation moves the
    clock to the step's time. Past the end the last step is repeated.
    """

    def __init__(self, clock: FakeClock, steps: list):
        self.clock = clock
        self.steps = steps
        self.calls: Dict[str, int] = defaultdict(int)

    async def observe(self, token_id: str) -> PriceObservation:
        index = min(self.calls[token_id], len(self.steps) - 1)
        self.calls[token_id] += 1
        step = self.steps[index]
        if isinstance(step, Exception):
            raise step
        t, price, reserve = step
        self.clock.now = t
        return PriceObservation(price=price, liquidity_reserve=reserve, observed_at=t)


class FailingFeed:
    """Raises the same error on every call."""

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def observe(self, token_id: str) -> PriceObservation:
        self.calls += 1
        raise self.error


class SlowFeed:
    """Never answers within any reasonable timeout."""

    def __init__(self, delay: float = 10.0):
        self.delay = delay
        self.calls = 0

    async def observe(self, token_id: str) -> PriceObservation:
        self.calls += 1
        await asyncio.sleep(self.delay)
        raise AssertionError("SlowFeed should have been timed out")


class StubbornFeed:
    """
    Slow feed that swallows cancellation and answers anyway, the way
    asyncio.wait_for can lose a cancel that races with a finished call.
    """

    def __init__(self, delay: float = 0.03):
        self.delay = delay
        self.calls = 0
        self.entered = asyncio.Event()
        self.call_times: List[float] = []

    async def observe(self, token_id: str) -> PriceObservation:
        self.calls += 1
        self.call_times.append(asyncio.get_running_loop().time())
        self.entered.set()
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            pass
        return PriceObservation(price=1.0, liquidity_reserve=100.0, observed_at=1.0)


class RecordingSink:
    """ExecutionSink that records calls; can block on a gate or fail."""

    def __init__(self, gate: Optional[asyncio.Event] = None, fail: bool = False):
        self.calls: List[tuple] = []
        self.gate = gate
        self.fail = fail
        self.started = asyncio.Event()

    async def liquidate(self, token_id, fraction, urgency) -> str:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append((token_id, fraction, urgency))
        if self.fail:
            raise ExecutionFailed("swap rejected")
        return f"ack-{len(self.calls)}"


class RecordingEvents:
    """EventSink that keeps every event."""

    def __init__(self):
        self.events: List[MonitorEvent] = []

    def emit(self, event: MonitorEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[MonitorEvent]:
        return [e for e in self.events if e.type is event_type]


def make_position(**overrides) -> Position:
    params = dict(
        token_id="TEST",
        entry_price=1.0,
        entry_reserve=100.0,
        stake=1.0,
        moon_fraction=0.2,
        opened_at=0.0,
    )
    params.update(overrides)
    return Position(**params)


def obs(price: float, reserve: float = 100.0, t: float = 0.0) -> PriceObservation:
    return PriceObservation(price=price, liquidity_reserve=reserve, observed_at=t)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    async def _poll():
        while not predicate():
            await asyncio.sleep(interval)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def thresholds():
    return ExitThresholds()


@pytest.fixture
def fast_config():
    return MonitorConfig(
        poll_interval_sec=0.01,
        feed_timeout_sec=0.005,
        max_feed_failures=4,
        feed_exhaustion_policy=FeedExhaustionPolicy.FAIL_CLOSED,
    )


@pytest.fixture
def slow_config():
    return MonitorConfig(
        poll_interval_sec=0.05,
        feed_timeout_sec=0.045,
        max_feed_failures=4,
        feed_exhaustion_policy=FeedExhaustionPolicy.FAIL_CLOSED,
    )


@pytest.fixture
def events():
    return RecordingEvents()


@pytest.fixture
def sink():
    return RecordingSink()

import pytest

from sniper_risk.config import ExitThresholds, FeedExhaustionPolicy, MonitorConfig
from sniper_risk.errors import FatalConfiguration
from sniper_risk.events import EventFanout, EventType, MonitorEvent
from sniper_risk.execution import DryRunExecutionSink
from sniper_risk.models import Urgency

from conftest import RecordingEvents


def test_default_thresholds():
    t = ExitThresholds()
    assert t.rug_reserve_drop == 0.40
    assert t.panic_drawdown == 0.60
    assert t.panic_timeout_sec == 90
    assert t.trailing_stop_drawdown == 0.30
    assert t.moon_multiplier == 50
    assert t.moon_timeout_sec == 86400


@pytest.mark.parametrize("overrides", [
    {"rug_reserve_drop": 0.0},
    {"panic_drawdown": 1.5},
    {"panic_timeout_fraction": 0.0},
    {"moon_multiplier": 1.0},
    {"panic_timeout_sec": -1},
])
def test_invalid_thresholds(overrides):
    with pytest.raises(FatalConfiguration):
        ExitThresholds(**overrides)


@pytest.mark.parametrize("interval,timeout", [(0.5, 0.5), (0.5, 0.9), (0.5, 0.0), (0.0, 0.1)])
def test_feed_timeout_must_be_shorter_than_interval(interval, timeout):
    with pytest.raises(FatalConfiguration):
        MonitorConfig(poll_interval_sec=interval, feed_timeout_sec=timeout)


def test_configuration_errors_are_value_errors():
    with pytest.raises(ValueError):
        MonitorConfig(poll_interval_sec=1.0, feed_timeout_sec=0.5, max_feed_failures=-1)


def test_exhaustion_policy_from_string():
    assert FeedExhaustionPolicy("fail_open") is FeedExhaustionPolicy.FAIL_OPEN
    cfg = MonitorConfig(poll_interval_sec=1.0, feed_timeout_sec=0.5,
                        feed_exhaustion_policy=FeedExhaustionPolicy.FAIL_CLOSED)
    assert cfg.feed_exhaustion_policy is FeedExhaustionPolicy.FAIL_CLOSED


def test_fanout_survives_failing_sink():
    class Broken:
        def emit(self, event):
            raise RuntimeError("boom")

    recorder = RecordingEvents()
    fanout = EventFanout([Broken(), recorder])
    fanout.emit(MonitorEvent(EventType.POSITION_OPENED, "AAA", {"stake": 1.0}))

    assert len(recorder.events) == 1


@pytest.mark.asyncio
async def test_dry_run_sink_records():
    sink = DryRunExecutionSink()
    first = await sink.liquidate("AAA", 0.5, Urgency.NORMAL)
    second = await sink.liquidate("AAA", 1.0, Urgency.EMERGENCY)

    assert (first, second) == ("dry-run-1", "dry-run-2")
    assert [(s.fraction, s.urgency) for s in sink.submitted] == [
        (0.5, Urgency.NORMAL),
        (1.0, Urgency.EMERGENCY),
    ]


@pytest.mark.asyncio
async def test_dry_run_sink_history_is_bounded():
    sink = DryRunExecutionSink(max_history=2)
    for fraction in (0.1, 0.2, 0.3):
        await sink.liquidate("AAA", fraction, Urgency.NORMAL)

    assert [s.fraction for s in sink.submitted] == [0.2, 0.3]

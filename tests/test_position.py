import math

import pytest

from sniper_risk.errors import FatalConfiguration, FeedMalformed
from sniper_risk.models import Decision, DecisionKind, Policy, PositionStatus, Urgency

from conftest import make_position, obs


def test_new_position_defaults():
    position = make_position(stake=2.0, moon_fraction=0.25)
    assert position.remaining_stake == 2.0
    assert position.moon_remaining == pytest.approx(0.5)
    assert position.peak_price == position.entry_price
    assert position.status is PositionStatus.ACTIVE
    assert not position.fired_flags


@pytest.mark.parametrize("overrides", [
    {"stake": 0.0},
    {"stake": -1.0},
    {"entry_price": 0.0},
    {"entry_price": math.nan},
    {"entry_reserve": 0.0},
    {"moon_fraction": 1.5},
    {"token_id": ""},
])
def test_invalid_position_rejected(overrides):
    with pytest.raises(FatalConfiguration):
        make_position(**overrides)


def test_update_peak_only_increases():
    position = make_position()
    position.update_peak(3.0)
    position.update_peak(2.0)
    assert position.peak_price == 3.0


def test_full_exit_closes():
    position = make_position()
    liquidation = position.apply_decision(Decision.full_exit(Policy.TRAILING_STOP, "test"))

    assert liquidation.kind is DecisionKind.FULL_EXIT
    assert liquidation.fraction == 1.0
    assert liquidation.amount == 1.0
    assert liquidation.closes_position
    assert liquidation.urgency is Urgency.NORMAL
    assert position.remaining_stake == 0.0
    assert position.moon_remaining == 0.0
    assert position.status is PositionStatus.CLOSED


def test_partial_exit_sets_flag_and_keeps_moon():
    position = make_position()
    liquidation = position.apply_decision(Decision.partial_exit(Policy.PANIC_TIMEOUT, 0.5))

    assert liquidation.fraction == pytest.approx(0.5)
    assert position.remaining_stake == pytest.approx(0.5)
    assert position.moon_remaining == pytest.approx(0.2)
    assert position.has_fired(Policy.PANIC_TIMEOUT)
    assert position.status is PositionStatus.PARTIALLY_EXITED


def test_moon_allocation_capped_by_remaining_stake():
    position = make_position(moon_fraction=0.5)
    position.apply_decision(Decision.partial_exit(Policy.PANIC_TIMEOUT, 0.8))
    assert position.remaining_stake == pytest.approx(0.2)
    assert position.moon_remaining == pytest.approx(0.2)

    liquidation = position.apply_decision(Decision.moon_exit())
    assert liquidation.fraction == pytest.approx(1.0)
    assert position.remaining_stake == 0.0
    assert position.status is PositionStatus.CLOSED


def test_moon_exit_leaves_position_partially_exited():
    position = make_position()
    liquidation = position.apply_decision(Decision.moon_exit("55x"))

    assert liquidation.fraction == pytest.approx(0.2)
    assert position.remaining_stake == pytest.approx(0.8)
    assert position.moon_remaining == 0.0
    assert position.has_fired(Policy.MOON)
    assert position.status is PositionStatus.PARTIALLY_EXITED


def test_dust_residual_is_swept():
    position = make_position()
    liquidation = position.apply_decision(
        Decision.partial_exit(Policy.PANIC_TIMEOUT, 0.9999999),
        min_liquidation_stake=1e-6,
    )
    assert liquidation.fraction == 1.0
    assert position.remaining_stake == 0.0
    assert position.is_closed


def test_no_action_and_closed_position_yield_nothing():
    position = make_position()
    assert position.apply_decision(Decision.no_action()) is None

    position.apply_decision(Decision.full_exit(Policy.RUG_PULL))
    assert position.apply_decision(Decision.full_exit(Policy.PANIC_SELL)) is None
    assert position.apply_decision(Decision.moon_exit()) is None


def test_stake_never_increases_and_closed_iff_zero():
    position = make_position()
    decisions = [
        Decision.partial_exit(Policy.PANIC_TIMEOUT, 0.5),
        Decision.moon_exit(),
        Decision.partial_exit(Policy.PANIC_TIMEOUT, 0.5),
        Decision.full_exit(Policy.TRAILING_STOP),
    ]
    remaining, moon = position.remaining_stake, position.moon_remaining
    for decision in decisions:
        position.apply_decision(decision, min_liquidation_stake=1e-6)
        assert 0.0 <= position.remaining_stake <= remaining
        assert 0.0 <= position.moon_remaining <= moon
        assert position.is_closed == (position.remaining_stake == 0.0)
        remaining, moon = position.remaining_stake, position.moon_remaining
    assert position.is_closed


# =============================================================================
# Observations
# =============================================================================

def test_valid_observation_passes():
    observation = obs(1.0, reserve=0.0)
    assert observation.validate() is observation


@pytest.mark.parametrize("price,reserve", [
    (0.0, 10.0),
    (-1.0, 10.0),
    (math.nan, 10.0),
    (math.inf, 10.0),
    (1.0, -1.0),
    (1.0, math.inf),
])
def test_invalid_observation_rejected(price, reserve):
    with pytest.raises(FeedMalformed):
        obs(price, reserve=reserve).validate()


def test_urgency_by_policy():
    assert Decision.full_exit(Policy.RUG_PULL).urgency is Urgency.EMERGENCY
    assert Decision.full_exit(Policy.FEED_EXHAUSTED).urgency is Urgency.EMERGENCY
    assert Decision.full_exit(Policy.TRAILING_STOP).urgency is Urgency.NORMAL
    assert Decision.moon_exit().urgency is Urgency.NORMAL

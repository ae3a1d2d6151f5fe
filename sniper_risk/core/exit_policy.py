"""
Exit Policy Engine

Pure decision function evaluated once per observation tick.

Policies are checked in strict priority order and the first one that
triggers wins; the rest are skipped for that tick:

1. Rug-pull:      liquidity reserve dropped >= 40% from the entry reserve -> full exit
2. Panic sell:    price dropped >= 60% from entry -> full exit
   Panic timeout: > 90s open without reaching 1.1x entry -> sell 50% (once)
3. Trailing stop: price dropped >= 30% from a peak above entry -> full exit
4. Moon mode:     50x entry or 24h open -> sell the moon allocation (once)
"""

from typing import Optional

from ..config import ExitThresholds, config
from ..models import Decision, Policy, Position, PriceObservation


def evaluate(
    position: Position,
    observation: PriceObservation,
    now: float,
    thresholds: Optional[ExitThresholds] = None,
) -> Decision:
    """
    Decide what to do with a position for one tick.

    Does not mutate the position; the caller applies the returned decision.

    Args:
        position: Current position state
        observation: Validated price observation for this tick
        now: Current time (same clock as position.opened_at)
        thresholds: Trigger levels (default from config)

    Returns:
        At most one Decision
    """
    if position.is_closed:
        return Decision.no_action()

    t = thresholds or config.thresholds

    decision = (
        check_rug_pull(position, observation, t)
        or check_panic(position, observation, now, t)
        or check_trailing_stop(position, observation, t)
        or check_moon(position, observation, now, t)
    )
    return decision or Decision.no_action()


def check_rug_pull(
    position: Position,
    observation: PriceObservation,
    t: ExitThresholds,
) -> Optional[Decision]:
    """Level 1: liquidity reserve drained relative to the reserve at entry."""
    drop = 1.0 - observation.liquidity_reserve / position.entry_reserve
    if drop >= t.rug_reserve_drop:
        return Decision.full_exit(Policy.RUG_PULL, f"Reserve down {drop * 100:.1f}% from entry")
    return None


def check_panic(
    position: Position,
    observation: PriceObservation,
    now: float,
    t: ExitThresholds,
) -> Optional[Decision]:
    """Level 2: price collapse, or no growth within the timeout window."""
    drawdown = (position.entry_price - observation.price) / position.entry_price
    if drawdown >= t.panic_drawdown:
        return Decision.full_exit(Policy.PANIC_SELL, f"Price down {drawdown * 100:.1f}% from entry")

    elapsed = position.elapsed(now)
    if (
        elapsed > t.panic_timeout_sec
        and observation.price < position.entry_price * t.panic_timeout_min_gain
        and not position.has_fired(Policy.PANIC_TIMEOUT)
    ):
        return Decision.partial_exit(
            Policy.PANIC_TIMEOUT,
            t.panic_timeout_fraction,
            f"No growth after {elapsed:.0f}s",
        )
    return None


def check_trailing_stop(
    position: Position,
    observation: PriceObservation,
    t: ExitThresholds,
) -> Optional[Decision]:
    """Level 3: drawdown from the highest price seen, once the position was in profit."""
    peak = max(position.peak_price, observation.price)
    if peak <= position.entry_price:
        return None

    drawdown = (peak - observation.price) / peak
    if drawdown >= t.trailing_stop_drawdown:
        return Decision.full_exit(Policy.TRAILING_STOP, f"Price down {drawdown * 100:.1f}% from peak {peak:.10g}")
    return None


def check_moon(
    position: Position,
    observation: PriceObservation,
    now: float,
    t: ExitThresholds,
) -> Optional[Decision]:
    """Moon mode: take the reserved allocation off on a huge multiple or on the timer."""
    if position.has_fired(Policy.MOON) or position.moon_remaining <= 0:
        return None

    multiplier = observation.price / position.entry_price
    if multiplier >= t.moon_multiplier:
        return Decision.moon_exit(f"{multiplier:.0f}x from entry")

    if position.elapsed(now) >= t.moon_timeout_sec:
        return Decision.moon_exit(f"Moon timer expired after {position.elapsed(now):.0f}s")
    return None

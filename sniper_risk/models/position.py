"""
Position Models
===============

Dataclasses for an open position and the price observations that drive it.

A Position is owned by exactly one PositionMonitor task, which is the only
code path allowed to mutate it.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set

from ..errors import FatalConfiguration, FeedMalformed
from .decision import Decision, DecisionKind, Liquidation, ONE_SHOT_POLICIES, Policy


class PositionStatus(Enum):
    ACTIVE = "active"
    PARTIALLY_EXITED = "partially_exited"
    CLOSED = "closed"


def _is_positive(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


@dataclass(frozen=True)
class PriceObservation:
    """One PriceFeed reading. Ephemeral, never persisted."""
    price: float
    liquidity_reserve: float
    observed_at: float

    def validate(self) -> "PriceObservation":
        """
        Check the observation is usable.

        Raises:
            FeedMalformed: on non-finite or non-positive price, or negative reserve
        """
        if not _is_positive(self.price):
            raise FeedMalformed(f"Invalid price: {self.price!r}")
        reserve = self.liquidity_reserve
        if not isinstance(reserve, (int, float)) or not math.isfinite(reserve) or reserve < 0:
            raise FeedMalformed(f"Invalid liquidity reserve: {reserve!r}")
        return self


@dataclass
class Position:
    """
    An open trade monitored for exit conditions.

    remaining_stake and moon_remaining only ever decrease. moon_remaining is
    a sub-allocation of remaining_stake, not separate capital: every
    liquidation (moon or general) reduces remaining_stake.
    """
    # Captured once at open, immutable afterwards
    token_id: str
    entry_price: float
    entry_reserve: float
    stake: float
    moon_fraction: float = 0.2
    opened_at: float = field(default_factory=time.time)

    # Tracking state
    remaining_stake: float = None
    moon_remaining: float = None
    peak_price: float = None
    status: PositionStatus = PositionStatus.ACTIVE
    fired_flags: Set[Policy] = field(default_factory=set)

    def __post_init__(self):
        if not self.token_id:
            raise FatalConfiguration("token_id is required")
        if not _is_positive(self.entry_price):
            raise FatalConfiguration(f"{self.token_id}: entry_price must be positive, got {self.entry_price!r}")
        if not _is_positive(self.entry_reserve):
            raise FatalConfiguration(f"{self.token_id}: entry_reserve must be positive, got {self.entry_reserve!r}")
        if not _is_positive(self.stake):
            raise FatalConfiguration(f"{self.token_id}: stake must be positive, got {self.stake!r}")
        if not (0.0 <= self.moon_fraction <= 1.0):
            raise FatalConfiguration(f"{self.token_id}: moon_fraction must be in [0, 1], got {self.moon_fraction!r}")

        if self.remaining_stake is None:
            self.remaining_stake = self.stake
        if self.moon_remaining is None:
            self.moon_remaining = self.moon_allocation
        if self.peak_price is None:
            self.peak_price = self.entry_price

    # -------------------------------------------------------------------------
    # Derived properties
    # -------------------------------------------------------------------------

    @property
    def moon_allocation(self) -> float:
        """Stake reserved for extended-upside capture."""
        return self.stake * self.moon_fraction

    @property
    def is_closed(self) -> bool:
        return self.status is PositionStatus.CLOSED

    def elapsed(self, now: float) -> float:
        """Seconds since the position was opened."""
        return now - self.opened_at

    def has_fired(self, policy: Policy) -> bool:
        return policy in self.fired_flags

    # -------------------------------------------------------------------------
    # Mutation (owning monitor only)
    # -------------------------------------------------------------------------

    def update_peak(self, price: float) -> None:
        if price > self.peak_price:
            self.peak_price = price

    def apply_decision(
        self,
        decision: Decision,
        min_liquidation_stake: float = 0.0,
    ) -> Optional[Liquidation]:
        """
        Apply an exit decision to the stake bookkeeping.

        State is updated here, before anything is submitted downstream, and
        is never rolled back.

        Args:
            decision: Decision returned by the policy engine
            min_liquidation_stake: Residual stake below this is swept into the exit

        Returns:
            Liquidation instruction, or None if there is nothing to sell
        """
        if not decision.is_action or self.is_closed:
            return None

        before = self.remaining_stake
        if decision.kind is DecisionKind.FULL_EXIT:
            amount = before
        elif decision.kind is DecisionKind.PARTIAL_EXIT:
            amount = before * decision.fraction
        else:
            amount = min(self.moon_remaining, before)

        if before - amount < min_liquidation_stake:
            amount = before
        if amount <= 0:
            return None

        if amount >= before:
            amount = before
            self.remaining_stake = 0.0
        else:
            self.remaining_stake = before - amount

        if decision.kind is DecisionKind.MOON_EXIT:
            self.moon_remaining = 0.0
        self.moon_remaining = min(self.moon_remaining, self.remaining_stake)

        if decision.policy in ONE_SHOT_POLICIES:
            self.fired_flags.add(decision.policy)

        if self.remaining_stake == 0.0:
            self.status = PositionStatus.CLOSED
        else:
            self.status = PositionStatus.PARTIALLY_EXITED

        return Liquidation(
            token_id=self.token_id,
            policy=decision.policy,
            kind=decision.kind,
            fraction=amount / before,
            amount=amount,
            remaining_after=self.remaining_stake,
            urgency=decision.urgency,
            reason=decision.reason,
        )

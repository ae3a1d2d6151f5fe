"""
Decision Models
===============

The closed set of exit decisions the policy engine can return, and the
liquidation instruction produced when a decision is applied to a position.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Policy(Enum):
    """Exit policies, listed in evaluation priority order."""
    RUG_PULL = "rug_pull"
    PANIC_SELL = "panic_sell"
    PANIC_TIMEOUT = "panic_timeout"
    TRAILING_STOP = "trailing_stop"
    MOON = "moon"
    # Forced by the monitor itself when the price feed is exhausted
    FEED_EXHAUSTED = "feed_exhausted"


# Policies whose effect may execute at most once per position
ONE_SHOT_POLICIES = frozenset({Policy.PANIC_TIMEOUT, Policy.MOON})

# Policies that liquidate under emergency conditions
EMERGENCY_POLICIES = frozenset({Policy.RUG_PULL, Policy.PANIC_SELL, Policy.FEED_EXHAUSTED})


class DecisionKind(Enum):
    NO_ACTION = "no_action"
    PARTIAL_EXIT = "partial_exit"
    FULL_EXIT = "full_exit"
    MOON_EXIT = "moon_exit"


class Urgency(Enum):
    """Hint passed to the ExecutionSink (e.g. to pick slippage / priority fee)."""
    NORMAL = "normal"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class Decision:
    """
    Result of one policy evaluation.

    Use the constructors (no_action, partial_exit, full_exit, moon_exit)
    rather than building instances directly.
    """
    kind: DecisionKind
    policy: Optional[Policy] = None
    fraction: float = 0.0
    reason: str = ""

    @classmethod
    def no_action(cls) -> "Decision":
        return cls(DecisionKind.NO_ACTION)

    @classmethod
    def partial_exit(cls, policy: Policy, fraction: float, reason: str = "") -> "Decision":
        return cls(DecisionKind.PARTIAL_EXIT, policy, fraction, reason)

    @classmethod
    def full_exit(cls, policy: Policy, reason: str = "") -> "Decision":
        return cls(DecisionKind.FULL_EXIT, policy, 1.0, reason)

    @classmethod
    def moon_exit(cls, reason: str = "") -> "Decision":
        return cls(DecisionKind.MOON_EXIT, Policy.MOON, 0.0, reason)

    @property
    def is_action(self) -> bool:
        return self.kind is not DecisionKind.NO_ACTION

    @property
    def urgency(self) -> Urgency:
        if self.policy in EMERGENCY_POLICIES:
            return Urgency.EMERGENCY
        return Urgency.NORMAL


@dataclass(frozen=True)
class Liquidation:
    """A liquidation instruction for the ExecutionSink."""
    token_id: str
    policy: Policy
    kind: DecisionKind
    fraction: float  # Of the remaining stake before this exit
    amount: float    # Stake units (SOL)
    remaining_after: float
    urgency: Urgency
    reason: str = ""

    @property
    def closes_position(self) -> bool:
        return self.remaining_after == 0.0

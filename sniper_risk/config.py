"""
Configuration for the Pump Sniper Risk Monitor

All tunable thresholds in one place. Defaults for the timing and trading
values come from settings.py (environment / .env).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet

from . import settings
from .errors import FatalConfiguration


class FeedExhaustionPolicy(Enum):
    """What a monitor does once its price feed keeps failing."""
    FAIL_CLOSED = "fail_closed"  # Force a protective full exit
    FAIL_OPEN = "fail_open"      # Stop monitoring and raise an alert


# =============================================================================
# Exit Thresholds
# =============================================================================

@dataclass(frozen=True)
class ExitThresholds:
    """Trigger levels for the exit policies."""

    # Rug-pull: reserve drop vs entry reserve
    rug_reserve_drop: float = 0.40

    # Panic sell: drawdown from entry price
    panic_drawdown: float = 0.60

    # Panic timeout: no meaningful gain after this long -> sell part of the stake
    panic_timeout_sec: float = 90.0
    panic_timeout_min_gain: float = 1.1
    panic_timeout_fraction: float = 0.5

    # Trailing stop: drawdown from peak
    trailing_stop_drawdown: float = 0.30

    # Moon mode exit triggers
    moon_multiplier: float = 50.0
    moon_timeout_sec: float = 86400.0

    def __post_init__(self):
        for name in ("rug_reserve_drop", "panic_drawdown", "trailing_stop_drawdown"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise FatalConfiguration(f"{name} must be in (0, 1], got {value}")
        if not 0 < self.panic_timeout_fraction <= 1:
            raise FatalConfiguration(
                f"panic_timeout_fraction must be in (0, 1], got {self.panic_timeout_fraction}"
            )
        if self.panic_timeout_sec < 0 or self.moon_timeout_sec < 0:
            raise FatalConfiguration("Policy timeouts must be non-negative")
        if self.moon_multiplier <= 1:
            raise FatalConfiguration(f"moon_multiplier must be > 1, got {self.moon_multiplier}")


# =============================================================================
# Monitor Loop
# =============================================================================

@dataclass(frozen=True)
class MonitorConfig:
    """Timing and failure handling for a PositionMonitor."""

    poll_interval_sec: float = field(default_factory=lambda: settings.POLL_INTERVAL_SECONDS)

    # Must be strictly shorter than the poll interval
    feed_timeout_sec: float = field(default_factory=lambda: settings.FEED_TIMEOUT_SECONDS)

    # Consecutive failures tolerated before escalation
    max_feed_failures: int = field(default_factory=lambda: settings.MAX_FEED_FAILURES)

    feed_exhaustion_policy: FeedExhaustionPolicy = field(
        default_factory=lambda: FeedExhaustionPolicy(settings.FEED_EXHAUSTION_POLICY)
    )

    # Smallest stake (SOL) worth leaving in a position; smaller residuals are sold too
    min_liquidation_stake: float = 1e-6

    def __post_init__(self):
        if self.poll_interval_sec <= 0:
            raise FatalConfiguration(f"poll_interval_sec must be positive, got {self.poll_interval_sec}")
        if not 0 < self.feed_timeout_sec < self.poll_interval_sec:
            raise FatalConfiguration(
                f"feed_timeout_sec ({self.feed_timeout_sec}) must be positive and shorter "
                f"than poll_interval_sec ({self.poll_interval_sec})"
            )
        if self.max_feed_failures < 0:
            raise FatalConfiguration(f"max_feed_failures must be >= 0, got {self.max_feed_failures}")
        if self.min_liquidation_stake < 0:
            raise FatalConfiguration("min_liquidation_stake must be >= 0")


# =============================================================================
# Token Discovery
# =============================================================================

@dataclass(frozen=True)
class DiscoveryFilters:
    """Static eligibility rules applied at the discovery feed boundary."""
    max_age_sec: float = 900.0
    require_mint_revoked: bool = True
    min_liquidity: float = 5.0  # SOL
    lp_statuses: FrozenSet[str] = frozenset({"initialized", "pending"})
    min_price_change_24h: float = 20.0  # Percent, strict


# =============================================================================
# Aggregate
# =============================================================================

@dataclass(frozen=True)
class Config:
    """All configuration settings."""
    thresholds: ExitThresholds = field(default_factory=ExitThresholds)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    discovery: DiscoveryFilters = field(default_factory=DiscoveryFilters)

    stake_sol: float = field(default_factory=lambda: settings.STAKE_SOL)
    moon_fraction: float = field(default_factory=lambda: settings.MOON_FRACTION)
    max_open_positions: int = field(default_factory=lambda: settings.MAX_OPEN_POSITIONS)
    scan_interval_sec: float = field(default_factory=lambda: settings.SCAN_INTERVAL_SECONDS)


# Global config instance
config = Config()

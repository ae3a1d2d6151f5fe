"""
Error Taxonomy
==============

Exceptions raised across the risk monitor.

- FeedError: PriceFeed problems, contained inside a PositionMonitor tick
  - FeedUnavailable: network error or timeout (transient)
  - FeedMalformed: observation failed validation (same retry handling)
- FeedExhausted: consecutive feed failures exceeded the configured limit
- ExecutionFailed: ExecutionSink rejected a liquidation (logged, never rolled back)
- FatalConfiguration: invalid position or monitor parameters
- PositionAlreadyMonitored: Supervisor.open for a token that already has a monitor
- SupervisorClosed: Supervisor.open after shutdown has started
"""


class SniperError(Exception):
    """Base class for all risk monitor errors."""


class FeedError(SniperError):
    """PriceFeed could not produce a usable observation."""


class FeedUnavailable(FeedError):
    """Transient network or timeout failure from the PriceFeed."""


class FeedMalformed(FeedError):
    """Observation data failed validation (e.g. non-positive price)."""


class FeedExhausted(SniperError):
    """Too many consecutive feed failures for one position."""

    def __init__(self, token_id: str, failures: int):
        super().__init__(f"{token_id}: {failures} consecutive price feed failures")
        self.token_id = token_id
        self.failures = failures


class ExecutionFailed(SniperError):
    """ExecutionSink reported a failed liquidation."""


class FatalConfiguration(SniperError, ValueError):
    """Invalid parameters supplied at construction time."""


class SupervisorClosed(SniperError):
    """The supervisor is shutting down and accepts no new positions."""


class PositionAlreadyMonitored(SniperError):
    """A monitor already exists for this token."""

    def __init__(self, token_id: str):
        super().__init__(f"Position already monitored: {token_id}")
        self.token_id = token_id

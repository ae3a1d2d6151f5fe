"""
Collaborator Interfaces

The core only talks to market data and execution through these protocols.
Implementations must be safe for concurrent use by many monitors.
"""

from typing import Protocol

from ..models import PriceObservation, Urgency


class PriceFeed(Protocol):
    async def observe(self, token_id: str) -> PriceObservation:
        """
        Return the current price and liquidity reserve for a token.

        Raises:
            FeedUnavailable: network error or timeout
            FeedMalformed: the source returned unusable data
        """
        ...


class ExecutionSink(Protocol):
    async def liquidate(self, token_id: str, fraction: float, urgency: Urgency) -> str:
        """
        Sell a fraction of the remaining stake.

        Returns:
            Acknowledgement (e.g. transaction signature)

        Raises:
            ExecutionFailed: the swap could not be submitted
        """
        ...
